"""Deterministic rule-based extraction."""

from taskline.patterns.engine import Extraction, PatternEngine

__all__ = ["Extraction", "PatternEngine"]
