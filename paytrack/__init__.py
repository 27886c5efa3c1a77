"""paytrack - offline-first recurring payment tracker with remote sync."""

__version__ = "0.3.0"
