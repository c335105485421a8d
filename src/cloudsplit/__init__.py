"""CloudSplit: shared bills, per-person shares and payment tracking."""

__version__ = "0.1.0"
