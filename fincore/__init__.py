"""Transaction categorization and invoice reconciliation core."""

__version__ = "0.1.0"
