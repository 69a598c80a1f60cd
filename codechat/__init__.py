"""Streaming chat assistant for programming help."""

__version__ = "0.1.0"
