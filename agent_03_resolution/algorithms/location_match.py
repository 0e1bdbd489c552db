#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Cross-Source Location Matching

Decides whether two pharmacy candidates from different sources (map
search, manual entries, previously reported pharmacies) denote the same
physical pharmacy.  Source identifiers never agree across sources, so the
decision rests on textual evidence and requires agreement on both the
name and the address:

    1. Normalised names are equal, or one contains the other
    2. AND either the leading street numbers agree, or the normalised
       addresses share more than 80% of their characters position by
       position

Distinct pharmacies shown twice are preferred over two pharmacies merged
into one.

Dependencies:
    pip install rapidfuzz
"""

from __future__ import annotations

import logging
import re
from typing import Any

from rapidfuzz.distance import Hamming

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

# Shortest name allowed to match by containment ("cvs" inside "cvspharmacy")
MIN_CONTAINED_NAME_LENGTH = 3

ADDRESS_SIMILARITY_THRESHOLD = 0.8

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_LEADING_NUMBER = re.compile(r"^\s*(\d+)")


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def normalize_text(text: str | None) -> str:
    """Lowercase and strip every non-alphanumeric character (spaces included)."""
    if not text:
        return ""
    return _NON_ALNUM.sub("", text.lower())


def leading_street_number(address: str | None) -> str | None:
    """Return the digits at the start of an address ("123 Main St" → "123")."""
    if not address:
        return None
    m = _LEADING_NUMBER.match(address)
    return m.group(1) if m else None


# ---------------------------------------------------------------------------
# Scoring functions
# ---------------------------------------------------------------------------


def names_match(name_a: str | None, name_b: str | None) -> bool:
    """
    Names match when their normalised forms are equal, or when one contains
    the other and the contained name is at least MIN_CONTAINED_NAME_LENGTH
    characters long.
    """
    norm_a = normalize_text(name_a)
    norm_b = normalize_text(name_b)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True

    shorter, longer = sorted((norm_a, norm_b), key=len)
    return len(shorter) >= MIN_CONTAINED_NAME_LENGTH and shorter in longer


def address_overlap_similarity(address_a: str | None, address_b: str | None) -> float:
    """
    Position-by-position character overlap of the normalised addresses.

    Counts indices where both strings hold the same character and divides by
    the longer length.  This is a same-index comparison, not an edit
    distance: "123mainst" vs "123mainstreet" scores 9/13.

    Returns a value in [0.0, 1.0]; 0.0 when either address is empty.
    """
    norm_a = normalize_text(address_a)
    norm_b = normalize_text(address_b)
    if not norm_a or not norm_b:
        return 0.0
    return Hamming.normalized_similarity(norm_a, norm_b, pad=True)


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------


def _field(candidate: Any, *names: str) -> str:
    for name in names:
        if isinstance(candidate, dict):
            value = candidate.get(name)
        else:
            value = getattr(candidate, name, None)
        if value:
            return str(value)
    return ""


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def compare_locations(candidate_a: Any, candidate_b: Any) -> dict[str, Any]:
    """
    Compare two candidates and explain the decision.

    Candidates may be PharmacyCandidate-like objects (``name``,
    ``full_address``) or dicts with ``name`` and ``full_address``/``address``.

    Returns
    -------
    dict with keys:
        - name_match      : bool
        - street_number_a : str or None
        - street_number_b : str or None
        - address_similarity : float or None (None when not needed)
        - same_location   : bool
        - reason          : 'name_mismatch' | 'street_number_match'
                            | 'address_overlap' | 'address_mismatch'
    """
    name_a = _field(candidate_a, "name")
    name_b = _field(candidate_b, "name")
    address_a = _field(candidate_a, "full_address", "address")
    address_b = _field(candidate_b, "full_address", "address")

    result: dict[str, Any] = {
        "name_match": names_match(name_a, name_b),
        "street_number_a": None,
        "street_number_b": None,
        "address_similarity": None,
        "same_location": False,
        "reason": "name_mismatch",
    }
    if not result["name_match"]:
        return result

    num_a = leading_street_number(address_a)
    num_b = leading_street_number(address_b)
    result["street_number_a"] = num_a
    result["street_number_b"] = num_b

    if num_a and num_b and num_a == num_b:
        result["same_location"] = True
        result["reason"] = "street_number_match"
        return result

    similarity = address_overlap_similarity(address_a, address_b)
    result["address_similarity"] = round(similarity, 4)
    if similarity > ADDRESS_SIMILARITY_THRESHOLD:
        result["same_location"] = True
        result["reason"] = "address_overlap"
    else:
        result["reason"] = "address_mismatch"
    return result


def is_same_location(candidate_a: Any, candidate_b: Any) -> bool:
    """Return True if the two candidates denote the same physical pharmacy."""
    result = compare_locations(candidate_a, candidate_b)
    if result["same_location"]:
        logger.debug(
            "Matched %r with %r (%s)",
            _field(candidate_a, "source_id") or _field(candidate_a, "name"),
            _field(candidate_b, "source_id") or _field(candidate_b, "name"),
            result["reason"],
        )
    return result["same_location"]
