"""Channel/category reconciliation against a third-party platform API."""

__version__ = "0.1.0"
