"""Utterance normalization.

normalize(utterance, filler_words, synonym_map) -> cleaned text:

1. Replace colloquial aliases with their canonical term, longest alias
   first, in a single pass so replacements are never re-scanned.
2. Lowercase and strip punctuation.
3. Drop filler phrases such as "you know", longest first, then standalone
   filler tokens.

Pure and deterministic. If steps 1-3 leave nothing, the lowercased
original is returned instead.
"""

import re
from collections.abc import Iterable, Mapping
from functools import lru_cache

from concierge.utils.text import clean_text


@lru_cache(maxsize=256)
def _compile_synonyms(
    pairs: tuple[tuple[str, str], ...],
) -> tuple[re.Pattern[str] | None, dict[str, str]]:
    """Alternation of aliases sorted longest first, plus alias -> canonical."""
    lookup: dict[str, str] = {}
    for alias, canonical in pairs:
        lookup.setdefault(alias, canonical)
    if not lookup:
        return None, lookup

    aliases = sorted(lookup, key=lambda a: (-len(a), a))
    alternation = "|".join(
        r"[\W_]+".join(re.escape(token) for token in alias.split()) for alias in aliases
    )
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE), lookup


def _synonym_pairs(synonym_map: Mapping[str, Iterable[str]]) -> tuple[tuple[str, str], ...]:
    pairs = []
    for canonical, aliases in synonym_map.items():
        canonical_clean = clean_text(canonical)
        for alias in aliases:
            alias_clean = clean_text(alias)
            if alias_clean and alias_clean != canonical_clean:
                pairs.append((alias_clean, canonical_clean))
    return tuple(sorted(pairs))


def expand_synonyms(text: str, synonym_map: Mapping[str, Iterable[str]]) -> str:
    """Replace every alias occurrence with its canonical term."""
    pattern, lookup = _compile_synonyms(_synonym_pairs(synonym_map))
    if pattern is None:
        return text

    def _replace(match: re.Match[str]) -> str:
        return lookup[clean_text(match.group(0))]

    return pattern.sub(_replace, text)


@lru_cache(maxsize=256)
def _compile_fillers(phrases: frozenset[str]) -> re.Pattern[str] | None:
    """Whole-word alternation of multi-word fillers, longest first."""
    if not phrases:
        return None
    ordered = sorted(phrases, key=lambda p: (-len(p), p))
    alternation = "|".join(re.escape(phrase) for phrase in ordered)
    return re.compile(rf"(?<!\S)(?:{alternation})(?!\S)")


def strip_fillers(cleaned: str, filler_words: Iterable[str]) -> str:
    """Drop filler phrases, then filler tokens, from cleaned text."""
    fillers = {clean_text(w) for w in filler_words}
    fillers.discard("")
    pattern = _compile_fillers(frozenset(f for f in fillers if " " in f))
    if pattern is not None:
        cleaned = pattern.sub(" ", cleaned)
    return " ".join(t for t in cleaned.split() if t not in fillers)


def normalize(
    utterance: str,
    filler_words: Iterable[str],
    synonym_map: Mapping[str, Iterable[str]],
) -> str:
    """Normalize an utterance for matching."""
    expanded = expand_synonyms(utterance, synonym_map)
    cleaned = strip_fillers(clean_text(expanded), filler_words)
    if not cleaned:
        return utterance.lower()
    return cleaned
