"""
identity.py — Plate canonicalisation, lookup variants and validation.

This module answers four questions:
  1. "What is the identity of this plate string?"     → canonicalize()
  2. "Is this the same plate as that one?"            → same_identity()
  3. "Which spellings should I try when looking up?"  → search_variants()
  4. "Could this string be a plate at all?"           → is_plausible_plate()

Everything here is pure: no I/O, no state, and no exceptions.  Malformed
input (None, numbers, empty strings) degrades to "" / [] / False.

Canonical identity
──────────────────
  Upper-case, with every character that is not A-Z or 0-9 removed.

      "ab-12 cd"   →  "AB12CD"
      "1234 abc"   →  "1234ABC"
      "Ñ-12"       →  "12"        (non-ASCII letters are dropped too)

  Two plates are the same record when their canonical forms are equal,
  no matter how they were typed.
"""

import re
from typing import List

# Placed between the digit and letter groups of a formatted plate.
SEPARATOR = "-"

# Canonical plates are between these lengths (inclusive).
MIN_CANONICAL_LENGTH = 2
MAX_CANONICAL_LENGTH = 10

# Anything that is not an ASCII upper-case letter or digit.
_NON_ALNUM = re.compile(r"[^A-Z0-9]")

# A leading run of digits followed by a letter.
_LEADING_DIGITS = re.compile(r"^([0-9]+)(?=[A-Z])")


# ═══════════════════════════════════════════════════════════════════════════
#  Public functions
# ═══════════════════════════════════════════════════════════════════════════

def canonicalize(plate) -> str:
    """Collapse a plate string to its canonical identity.

    Examples:
        "ab-12 cd"  →  "AB12CD"
        "A.B!1@2"   →  "AB12"
        None        →  ""
    """
    if not isinstance(plate, str) or not plate:
        return ""
    return _NON_ALNUM.sub("", plate.upper()).strip()


def format_with_separator(plate, separator: str = SEPARATOR) -> str:
    """Rebuild a human-friendly spelling: digits, separator, the rest.

    Only applies when the canonical form is at least 4 characters long and
    starts with a digit.  Used for display and as a lookup variant, never
    for comparing plates.

    Examples:
        "1234abc"  →  "1234-ABC"
        "AB12CD"   →  "AB12CD"    (starts with a letter)
        "12A"      →  "12A"       (too short)
    """
    canonical = canonicalize(plate)
    if len(canonical) < 4:
        return canonical

    m = _LEADING_DIGITS.match(canonical)
    if not m:
        return canonical

    digits = m.group(1)
    return digits + separator + canonical[len(digits):]


def search_variants(plate) -> List[str]:
    """Generate the small, fixed set of spellings to try for a lookup.

    Members (duplicates and blanks removed, order kept):
      1. the original, trimmed and upper-cased
      2. the canonical form
      3. the separator-formatted form
      4. the original with separators stripped — only when it has one

    Returns:
        At most four strings.  An empty list for empty / non-string input.
    """
    if not isinstance(plate, str) or not plate.strip():
        return []

    candidates = [
        plate.strip().upper(),
        canonicalize(plate),
        format_with_separator(plate),
    ]
    if SEPARATOR in plate:
        candidates.append(plate.replace(SEPARATOR, "").strip().upper())

    # dict.fromkeys() de-duplicates while keeping first-seen order
    return [v for v in dict.fromkeys(candidates) if v.strip()]


def is_plausible_plate(plate) -> bool:
    """Heuristic check: could *plate* be a registration worth storing?

    Rejects empty / whitespace input and anything shorter than two
    characters once trimmed; otherwise the canonical form must be between
    MIN_CANONICAL_LENGTH and MAX_CANONICAL_LENGTH characters long.
    """
    if not isinstance(plate, str):
        return False
    if len(plate.strip()) < MIN_CANONICAL_LENGTH:
        return False
    return MIN_CANONICAL_LENGTH <= len(canonicalize(plate)) <= MAX_CANONICAL_LENGTH


def same_identity(a, b) -> bool:
    """True when *a* and *b* canonicalise to the same string."""
    return canonicalize(a) == canonicalize(b)
