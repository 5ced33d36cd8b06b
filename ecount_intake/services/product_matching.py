"""Catalog matching by normalized Levenshtein similarity.

Matching is a linear scan over the catalog: O(catalog_size * len^2) per item.
That is fine for the tens of entries a small business carries, but a large
item master would need an index (n-gram or trigram) in front of this.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional

from loguru import logger

from ..models import MatchedItem, ParsedOrder


DEFAULT_THRESHOLD = 0.2

# Demo catalog used when no ERP item master is available.
MOCK_CATALOG: list[MatchedItem] = [
    MatchedItem(code="A-001", name="깐쇼새우 1kg", unit_price=5000, unit="개"),
    MatchedItem(code="A-002", name="새우볼 500g", unit_price=3000, unit="개"),
    MatchedItem(code="A-003", name="탕수육 1kg", unit_price=8000, unit="개"),
    MatchedItem(code="B-001", name="짜장면 소스", unit_price=2000, unit="개"),
    MatchedItem(code="B-002", name="짬뽕 소스", unit_price=2500, unit="개"),
    MatchedItem(code="C-001", name="치킨 1마리", unit_price=15000, unit="마리"),
    MatchedItem(code="C-002", name="피자 라지", unit_price=25000, unit="판"),
    MatchedItem(code="D-001", name="김치찌개", unit_price=7000, unit="인분"),
    MatchedItem(code="D-002", name="된장찌개", unit_price=6000, unit="인분"),
]


@dataclass
class MatchResult:
    """Result of matching one item name against the catalog."""
    item: Optional[MatchedItem]
    score: float


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein (edit) distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = range(len(s2) + 1)
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """Similarity in [0, 1]: (max_len - distance) / max_len, 1.0 for two empty strings."""
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 1.0
    distance = levenshtein_distance(s1, s2)
    return (max_len - distance) / max_len


class ItemMatcher:
    """Matches free-text item names to catalog entries."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def match(self, item_name_raw: str, catalog: Iterable[MatchedItem]) -> MatchResult:
        """
        Find the best catalog entry for an item name.

        The first entry wins ties. The best entry is accepted only if its
        score is strictly greater than the threshold.

        Args:
            item_name_raw: Item name as written by the user
            catalog: Catalog entries, scanned in the given order

        Returns:
            MatchResult with the entry and score, or (None, 0.0)
        """
        needle = item_name_raw.lower()
        best_match: Optional[MatchedItem] = None
        best_score = 0.0

        for entry in catalog:
            score = levenshtein_similarity(needle, entry.name.lower())
            if best_match is None or score > best_score:
                best_score = score
                best_match = entry

        if best_match is None or best_score <= self.threshold:
            return MatchResult(item=None, score=0.0)
        return MatchResult(item=best_match, score=best_score)

    def enrich(self, order: ParsedOrder, catalog: Iterable[MatchedItem]) -> ParsedOrder:
        """Return a copy of the order with every line matched against the catalog."""
        catalog = list(catalog)
        lines = []
        for line in order.items:
            result = self.match(line.item_name_raw, catalog)
            if result.item is None:
                logger.debug("No catalog match for {!r}", line.item_name_raw)
            lines.append(line.model_copy(update={
                "matched_item": result.item,
                "confidence": result.score,
            }))
        return order.model_copy(update={"items": lines})


def match(item_name_raw: str, catalog: Iterable[MatchedItem], threshold: float = DEFAULT_THRESHOLD) -> MatchResult:
    """Module-level shortcut for ``ItemMatcher(threshold).match``."""
    return ItemMatcher(threshold).match(item_name_raw, catalog)
