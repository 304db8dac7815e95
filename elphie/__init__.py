"""Elphie: streaming reconciliation engine for sweep / dark-pool chart feeds."""

__version__ = "0.3.0"
