"""Utility functions for the decision bridge."""
from utils.text import strip_code_fences, truncate, CODE_FENCE_RE

__all__ = [
    "strip_code_fences",
    "truncate",
    "CODE_FENCE_RE",
]
