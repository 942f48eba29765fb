"""Cheap, deterministic token estimation for transcript text."""

from __future__ import annotations

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate token count as ``ceil(len(text) / 4)``.

    Monotonic in text length and free of any model call, so it can gate
    deployment and strategy choice before the first request is made.
    """
    if not text:
        return 0
    return -(-len(text) // CHARS_PER_TOKEN)
