"""CRM spreadsheet import reconciliation service."""

__version__ = "0.1.0"
