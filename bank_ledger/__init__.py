"""
Bank Ledger

Account balances and an append-only movement ledger with atomic deposit,
withdraw and transfer operations. All money uses Decimal, never float.
"""

__version__ = "1.0.0"
