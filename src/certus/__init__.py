"""Certus - drug safety data access over the openFDA API."""

__version__ = "0.1.0"
