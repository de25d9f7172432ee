"""Order pricing, promotion and cashback ledger service."""

__version__ = "1.0.0"
