"""Fold every source batch into one record per ``type_code``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from catalog_record import DIFFICULTY_CEILING, DIFFICULTY_FLOOR, CatalogRecord, clamp_difficulty
from catalog_sources import SourceBatch

ISSUE_OUT_OF_RANGE = "out_of_range"
ISSUE_INVERTED = "inverted"


@dataclass
class MergeResult:
    records: List[CatalogRecord]
    total_in: int
    winners: Dict[str, str] = field(default_factory=dict)
    overrides: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def duplicates(self) -> int:
        return self.total_in - len(self.records)

    def duplicate_examples(self, limit: int = 5) -> List[str]:
        return list(self.overrides)[:limit]


@dataclass(frozen=True)
class DifficultyIssue:
    batch: str
    code: str
    difficulty_min: int
    difficulty_max: int
    kind: str


def merge_last_write_wins(batches: Sequence[SourceBatch]) -> MergeResult:
    """Keep the last record seen for each code.

    Codes keep the position of their first appearance; only the record
    occupying that position is replaced.
    """
    merged: Dict[str, CatalogRecord] = {}
    winners: Dict[str, str] = {}
    seen_in: Dict[str, List[str]] = {}
    total = 0
    for batch in batches:
        for record in batch.records:
            total += 1
            merged[record.code] = record
            winners[record.code] = batch.name
            seen_in.setdefault(record.code, []).append(batch.name)

    overrides = {code: names for code, names in seen_in.items() if len(names) > 1}
    return MergeResult(
        records=list(merged.values()),
        total_in=total,
        winners=winners,
        overrides=overrides,
    )


def audit_difficulty(batches: Sequence[SourceBatch]) -> List[DifficultyIssue]:
    """Report raw values outside [1, 5] and ranges that stay inverted after clamping.

    Nothing is corrected here: out-of-range values are clamped when rows are
    written, and inverted ranges are written as they are.
    """
    issues: List[DifficultyIssue] = []
    for batch in batches:
        for record in batch.records:
            low, high = record.difficulty_min, record.difficulty_max
            if not (DIFFICULTY_FLOOR <= low <= DIFFICULTY_CEILING) or not (
                DIFFICULTY_FLOOR <= high <= DIFFICULTY_CEILING
            ):
                issues.append(DifficultyIssue(batch.name, record.code, low, high, ISSUE_OUT_OF_RANGE))
            if clamp_difficulty(low) > clamp_difficulty(high):
                issues.append(DifficultyIssue(batch.name, record.code, low, high, ISSUE_INVERTED))
    return issues
