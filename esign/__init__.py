"""E-signature workflow service."""

__version__ = "1.0.0"
