"""
Weighted-field keyword scoring used when vector search is unavailable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..storage.base import EmbeddingRecord

IDENTIFIER_WEIGHT = 1.0
NAME_WEIGHT = 1.0
CATEGORY_WEIGHT = 0.5
MEMO_WEIGHT = 0.8
METADATA_WEIGHT = 0.6

KEYWORD_RATIO_WEIGHT = 0.7
FIELD_WEIGHT = 0.3


@dataclass(frozen=True)
class KeywordMatch:
    """A record that scored at or above the threshold."""

    record: EmbeddingRecord
    score: float
    matched_fields: tuple[str, ...]
    position: int


def tokenize(query: str) -> list[str]:
    return query.lower().split()


def _free_text(record: EmbeddingRecord) -> str:
    # Records synced without a memo still expose their content.
    memo = record.source.memo
    return memo if memo else record.content


def weighted_fields(record: EmbeddingRecord) -> dict[str, float]:
    """Lower-cased field texts mapped to their weights.

    Identical texts collapse into one entry and the later weight wins, so
    the number of fields depends on the record.
    """
    fields: dict[str, float] = {}
    fields[record.owner_label.lower()] = IDENTIFIER_WEIGHT
    fields[(record.source.name or "").lower()] = NAME_WEIGHT
    fields[(record.source.category or "").lower()] = CATEGORY_WEIGHT
    fields[_free_text(record).lower()] = MEMO_WEIGHT
    for key, value in record.source.metadata.items():
        fields[f"{key}: {value}".lower()] = METADATA_WEIGHT
    return fields


class KeywordFallbackScorer:
    """Deterministic, explainable scorer over a record's weighted fields."""

    def score(self, record: EmbeddingRecord, keywords: list[str]) -> float:
        if not keywords:
            return 0.0

        fields = weighted_fields(record)
        matched = 0
        weighted_sum = 0.0
        for keyword in keywords:
            hit = False
            for text, weight in fields.items():
                if keyword in text:
                    weighted_sum += weight
                    hit = True
            if hit:
                matched += 1

        ratio = matched / len(keywords)
        weighted = weighted_sum / (len(keywords) * len(fields))
        return ratio * KEYWORD_RATIO_WEIGHT + weighted * FIELD_WEIGHT

    def matched_fields(self, record: EmbeddingRecord, keywords: list[str]) -> tuple[str, ...]:
        """Names of the fields any keyword hit, in first-hit order."""
        source = record.source
        matched: list[str] = []
        for keyword in keywords:
            if keyword in record.owner_label.lower():
                matched.append("identifier")
            if source.name and keyword in source.name.lower():
                matched.append("name")
            if keyword in _free_text(record).lower():
                matched.append("memo")
            if any(
                keyword in str(key).lower() or keyword in str(value).lower()
                for key, value in source.metadata.items()
            ):
                matched.append("metadata")
        return tuple(dict.fromkeys(matched))

    def search(
        self,
        records: Iterable[EmbeddingRecord],
        query: str,
        *,
        threshold: float,
    ) -> list[KeywordMatch]:
        """Score every record and keep those with score >= threshold."""
        keywords = tokenize(query)
        matches: list[KeywordMatch] = []
        for position, record in enumerate(records):
            score = self.score(record, keywords)
            if score < threshold:
                continue
            matches.append(
                KeywordMatch(
                    record=record,
                    score=score,
                    matched_fields=self.matched_fields(record, keywords),
                    position=position,
                )
            )
        return matches
