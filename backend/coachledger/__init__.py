"""Session booking and credit-ledger engine for coach/client fitness coaching."""

__version__ = "0.1.0"
