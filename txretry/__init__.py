"""Automatic retries for transactions that lose serialization conflicts."""

__version__ = "0.1.0"
