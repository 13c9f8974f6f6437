"""Command line tools for crmimport."""
