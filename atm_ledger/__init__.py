"""
ATM Ledger

Single-account banking ledgers that stay correct under concurrent deposits,
withdrawals and background cheque clearing, with best-effort mirroring of
every mutation to an external store.
"""

__version__ = "1.0.0"
