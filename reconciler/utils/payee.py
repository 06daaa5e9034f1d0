"""
Payee normalization and fuzzy similarity.
"""

import re
from typing import Optional

from rapidfuzz import fuzz

# Card processor prefixes and store suffixes that banks prepend/append to payees
NOISE_PREFIXES = re.compile(
    r"^(pos|debit|dbt|purchase|ach|checkcard|check card|sq \*|sq\*|tst\*|tst \*|pp\*|paypal \*|paypal\*)\s*",
    re.I,
)
STORE_NUMBER = re.compile(r"#?\s*\d{3,}")
NON_ALNUM = re.compile(r"[^a-z0-9 ]+")
WHITESPACE = re.compile(r"\s+")
CORPORATE_SUFFIXES = {"inc", "llc", "ltd", "co", "corp", "com"}


def normalize_payee(payee: Optional[str]) -> str:
    """
    Reduce a payee string to comparable tokens.

    "SQ *Blue Bottle Coffee #1234" -> "blue bottle coffee"
    """
    if not payee:
        return ""

    text = payee.strip().lower()
    previous = None
    while previous != text:
        previous = text
        text = NOISE_PREFIXES.sub("", text)
    text = STORE_NUMBER.sub(" ", text)
    text = NON_ALNUM.sub(" ", text)
    tokens = [t for t in WHITESPACE.split(text) if t and t not in CORPORATE_SUFFIXES]
    return " ".join(tokens)


def normalized_match(a: Optional[str], b: Optional[str]) -> bool:
    """True when both payees normalize to the same non-empty string."""
    left, right = normalize_payee(a), normalize_payee(b)
    return bool(left) and left == right


def payee_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity between two payees in [0, 1].

    Takes the best of token-sort and token-set ratios so that word order and
    extra tokens ("Shell" vs "Shell Oil 5723") are both tolerated.
    """
    left, right = normalize_payee(a), normalize_payee(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    score = max(
        fuzz.token_sort_ratio(left, right),
        fuzz.token_set_ratio(left, right),
    )
    return score / 100.0


def fuzzy_match(a: Optional[str], b: Optional[str], threshold: float = 0.8) -> bool:
    return payee_similarity(a, b) >= threshold
