"""Collect catalog records from the legacy seed file and the generation files.

Generation files are JSON objects keyed by batch name, for example::

    {
      "HS0_V3": [{"type_code": "MA-HS0-POL-01-101", "type_name": "...", ...}],
      "HS1_V3": [...]
    }

Batch order inside a file, and file order in the configuration, decide
which record wins when codes collide (see ``catalog_merge``).
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from catalog_record import CatalogRecord
from sql_values import SKIP_NOT_INSERT, parse_insert_line

LEGACY_BATCH_NAME = "legacy"


def _log(msg: str) -> None:
    print(f"[sources] {msg}")


class SourceFormatError(ValueError):
    """Raised when a generation file does not have the expected shape."""


@dataclass(frozen=True)
class SourceBatch:
    name: str
    origin: str
    records: Tuple[CatalogRecord, ...]

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class SeedFileScan:
    path: Path
    records: List[CatalogRecord] = field(default_factory=list)
    skipped: Counter = field(default_factory=Counter)
    lines_scanned: int = 0

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    def as_batch(self) -> SourceBatch:
        return SourceBatch(LEGACY_BATCH_NAME, str(self.path), tuple(self.records))


def scan_seed_lines(lines: Iterable[str], path: Path) -> SeedFileScan:
    scan = SeedFileScan(path=path)
    for line in lines:
        scan.lines_scanned += 1
        parsed = parse_insert_line(line)
        if parsed.record is not None:
            scan.records.append(parsed.record)
        elif parsed.reason != SKIP_NOT_INSERT:
            scan.skipped[parsed.reason] += 1
    return scan


def scan_seed_file(path: Path) -> SeedFileScan:
    """Parse every INSERT line of the legacy seed file."""
    with path.open("r", encoding="utf-8") as handle:
        return scan_seed_lines(handle, path)


def load_generation(path: Path) -> List[SourceBatch]:
    """Load one generation file as an ordered list of named batches."""
    generation = path.stem
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SourceFormatError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise SourceFormatError(f"{path}: expected an object of batch name -> records")

    batches: List[SourceBatch] = []
    for batch_name, entries in payload.items():
        if not isinstance(entries, list):
            raise SourceFormatError(f"{path}: batch {batch_name!r} is not a list")
        records: List[CatalogRecord] = []
        for position, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise SourceFormatError(
                    f"{path}: batch {batch_name!r} entry {position} is not an object"
                )
            try:
                records.append(CatalogRecord.from_mapping(entry))
            except ValueError as exc:
                raise SourceFormatError(
                    f"{path}: batch {batch_name!r} entry {position}: {exc}"
                ) from exc
        batches.append(SourceBatch(f"{generation}/{batch_name}", str(path), tuple(records)))
    return batches


def generation_paths(sources_dir: Path, names: Sequence[str]) -> List[Path]:
    return [sources_dir / f"{name}.json" for name in names]


def load_generations(paths: Sequence[Path]) -> List[SourceBatch]:
    batches: List[SourceBatch] = []
    for path in paths:
        loaded = load_generation(path)
        total = sum(len(batch) for batch in loaded)
        _log(f"{path.name}: {len(loaded)} batches, {total} records")
        batches.extend(loaded)
    return batches


def collect_sources(
    seed_scan: SeedFileScan, generations: Sequence[SourceBatch]
) -> List[SourceBatch]:
    """Legacy file first, then the generation batches in configured order."""
    return [seed_scan.as_batch(), *generations]


def describe_skips(scan: SeedFileScan) -> str:
    if not scan.skipped:
        return "none"
    return ", ".join(f"{reason}={count}" for reason, count in sorted(scan.skipped.items()))

