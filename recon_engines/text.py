"""
recon_engines.text -- Text normalization and similarity primitives.

Responsibility:
    Tokenize variant/SKU codes, compute the shared-token similarity used by
    the variant detector, normalize free-text fields, and measure normalized
    edit distance for the text-normalization detector.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Similarity and distance percentages are integers in [0, 100].
    - Identical inputs always produce identical outputs.
"""

from __future__ import annotations

import re
import unicodedata

from rapidfuzz.distance import Levenshtein

_VARIANT_SEPARATORS = re.compile(r"[-_/.\s]+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def variant_tokens(code: str) -> tuple[str, ...]:
    """Split a variant code into upper-cased tokens.

    ``"PET-WAVE-606-PINK"`` -> ``("PET", "WAVE", "606", "PINK")``
    """
    return tuple(t for t in _VARIANT_SEPARATORS.split(code.strip().upper()) if t)


def token_similarity(left: str, right: str) -> int:
    """Shared-token similarity between two variant codes, 0-100.

    Computed as ``|shared tokens| / max(token count) * 100`` over token
    multisets, rounded half-up.  Two codes with no tokens score 100 when
    both are empty and 0 otherwise.
    """
    a = variant_tokens(left)
    b = variant_tokens(right)
    if not a and not b:
        return 100
    if not a or not b:
        return 0

    remaining = list(b)
    shared = 0
    for token in a:
        if token in remaining:
            remaining.remove(token)
            shared += 1
    return (shared * 200 + max(len(a), len(b))) // (2 * max(len(a), len(b)))


def same_variant_tokens(left: str, right: str) -> bool:
    """True if two codes differ only in case or separators."""
    return variant_tokens(left) == variant_tokens(right)


def normalize_text(value: str | None) -> str:
    """Casefold, strip punctuation and accents, collapse whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    no_punct = _PUNCTUATION.sub(" ", stripped.casefold())
    return _WHITESPACE.sub(" ", no_punct).strip()


def distance_percent(left: str, right: str) -> int:
    """Normalized Levenshtein distance between two strings, 0-100."""
    if left == right:
        return 0
    return round(Levenshtein.normalized_distance(left, right) * 100)
