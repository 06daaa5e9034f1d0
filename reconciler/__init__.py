"""Statement Reconciler: bank statement vs. ledger reconciliation."""

__version__ = "1.0.0"
