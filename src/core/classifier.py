"""Keyword-driven spending category classification (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import List, Optional, Tuple

from core.models import PaymentCategory


@dataclass(frozen=True)
class CategoryRule:
    """One row of the classification table.

    - merchants: brand names, matched in the sender or the body
    - sender_keywords: matched in the sender only (too generic for bodies)
    - keywords: matched in the body only
    """

    category: PaymentCategory
    merchants: Tuple[str, ...] = ()
    sender_keywords: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()


# Evaluated top to bottom; the first rule with any hit wins.
CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule(
        PaymentCategory.FOOD,
        merchants=("zomato", "swiggy", "dominos", "mcdonald", "kfc", "dunzo"),
        keywords=("restaurant", "food", "meal", "cafe"),
    ),
    CategoryRule(
        PaymentCategory.TRAVEL,
        merchants=("irctc", "makemytrip", "cleartrip", "redbus", "goibibo", "uber", "ola", "rapido"),
        keywords=("flight", "train", "bus", "hotel", "travel", "fuel", "petrol"),
    ),
    CategoryRule(
        PaymentCategory.CLOTHES,
        merchants=("amazon", "flipkart", "myntra", "nykaa", "ajio"),
        keywords=("shopping", "clothes", "fashion"),
    ),
    CategoryRule(
        PaymentCategory.BILLS,
        merchants=("airtel", "jio", "bescom", "tatapower"),
        sender_keywords=("electricity", "water", "gas", "internet", "mobile", "broadband"),
        keywords=("bill", "recharge", "utility", "electricity"),
    ),
    CategoryRule(
        PaymentCategory.ENTERTAINMENT,
        merchants=("netflix", "prime", "spotify", "hotstar", "bookmyshow"),
        keywords=("movie", "music", "entertainment"),
    ),
    CategoryRule(
        PaymentCategory.HEALTHCARE,
        merchants=("apollo", "pharmeasy", "netmeds", "practo"),
        sender_keywords=("pharmacy", "hospital", "medical"),
        keywords=("medicine", "doctor", "health", "pharmacy", "hospital"),
    ),
]


def _word_start(term: str) -> re.Pattern:
    # Anchored at the start of a word only, so plurals and suffixes still hit.
    return re.compile(r"\b" + re.escape(term))


@dataclass(frozen=True)
class _CompiledRule:
    category: PaymentCategory
    sender_terms: Tuple[str, ...]
    body_patterns: Tuple[re.Pattern, ...]


def _compile(rules: List[CategoryRule]) -> List[_CompiledRule]:
    compiled: List[_CompiledRule] = []
    for rule in rules:
        compiled.append(
            _CompiledRule(
                category=rule.category,
                sender_terms=tuple(t.lower() for t in rule.merchants + rule.sender_keywords),
                body_patterns=tuple(_word_start(t.lower()) for t in rule.merchants + rule.keywords),
            )
        )
    return compiled


_COMPILED_RULES = _compile(CATEGORY_RULES)


def classify(
    body: Optional[str],
    sender: Optional[str],
    rules: Optional[List[CategoryRule]] = None,
) -> PaymentCategory:
    """Map an SMS to exactly one category, falling back to Others."""

    compiled = _COMPILED_RULES if rules is None else _compile(rules)
    lowered_body = (body or "").lower()
    lowered_sender = (sender or "").lower()

    for rule in compiled:
        if any(term in lowered_sender for term in rule.sender_terms):
            return rule.category
        if any(pattern.search(lowered_body) for pattern in rule.body_patterns):
            return rule.category
    return PaymentCategory.OTHERS
