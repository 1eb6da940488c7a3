"""WalletWise: an expense ledger with idempotent, race-safe expense creation."""

__version__ = "1.0.0"
