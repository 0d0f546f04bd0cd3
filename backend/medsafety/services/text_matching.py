"""Medication and condition name matching.

Matching is name based: there is no canonical drug ID. Containment in either
direction counts as a match, which tolerates free-text brand/generic variation
("Amoxicillin 500mg caps" vs "amoxicillin") at the cost of false positives for
very short names.
"""

import re
from collections.abc import Iterable

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", text.strip().lower())


def contains_fragment(text: str, fragment: str) -> bool:
    """Check whether ``fragment`` occurs inside ``text`` after normalization."""
    normalized_fragment = normalize_text(fragment)
    if not normalized_fragment:
        return False
    return normalized_fragment in normalize_text(text)


def matches(candidate: str, references: Iterable[str]) -> bool:
    """Check bidirectional substring containment against any reference.

    Args:
        candidate: Free-text name to test.
        references: Names to compare against.

    Returns:
        True if the normalized candidate contains, or is contained by, any
        normalized reference. Empty strings never match.
    """
    normalized = normalize_text(candidate)
    if not normalized:
        return False

    for reference in references:
        ref = normalize_text(reference)
        if ref and (ref in normalized or normalized in ref):
            return True
    return False
