"""Alcove: streaming, tool-calling chat engine."""

__version__ = "0.1.0"
