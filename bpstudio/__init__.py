"""Blueprint Studio — streaming LLM chat with live two-way blueprint sync."""

__version__ = "0.1.0"
