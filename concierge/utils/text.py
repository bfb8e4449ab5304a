"""Text cleanup shared by the normalizer and catalog merges."""

import re

PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace.

    Apostrophes are removed rather than split on, so "don't" becomes "dont".
    """
    text = text.lower().replace("'", "").replace("’", "")
    text = PUNCTUATION_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Split cleaned text into tokens."""
    return clean_text(text).split()
