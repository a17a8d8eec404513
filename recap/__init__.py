"""Recap - transcribe recordings and summarize them."""

__version__ = "0.1.0"
