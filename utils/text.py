"""Text processing utilities.

Helpers shared by the reply parser and the diagnostics paths: stripping
markdown code fences from model output and truncating text before it is
logged or echoed back in a decision reason.
"""
from __future__ import annotations

import re

# Opening (```json, ```JSON, ```) and closing code fence markers
CODE_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers, keeping the enclosed content.

    Args:
        text: Raw model output.

    Returns:
        The text with every fence marker removed and outer whitespace trimmed.
    """
    if not text:
        return ""
    return CODE_FENCE_RE.sub("", text).strip()


def truncate(text: str, limit: int = 200) -> str:
    """Shorten text to at most ``limit`` characters, marking the cut with '...'.

    Args:
        text: Input string; None is treated as empty.
        limit: Maximum length of the returned string.

    Returns:
        The original text if short enough, otherwise a prefix ending in '...'.
    """
    if not text:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."
