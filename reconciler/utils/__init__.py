"""Utility modules."""

from .money import MoneyValue, to_milli, from_milli, format_money
from .payee import normalize_payee, payee_similarity

__all__ = [
    "MoneyValue",
    "to_milli",
    "from_milli",
    "format_money",
    "normalize_payee",
    "payee_similarity",
]
