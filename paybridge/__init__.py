"""paybridge - payment gateway adapters."""

__version__ = "0.1.0"
