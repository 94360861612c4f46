"""Taskline: tiered natural-language task interpretation."""

__version__ = "0.1.0"
