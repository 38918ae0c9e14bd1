"""Chunked upserts of catalog records with per-chunk failure isolation."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import requests

from catalog_record import CONFLICT_COLUMN, CatalogRecord
from supabase_client import SupabaseClient, SupabaseError

DEFAULT_BATCH_SIZE = 100

# A chunk failing with one of these is counted and skipped; anything else
# is a bug and propagates.
CHUNK_ERRORS = (SupabaseError, requests.RequestException)


def _log(msg: str) -> None:
    print(f"[upsert] {msg}")


@dataclass
class UpsertSummary:
    label: str
    chunk_count: int = 0
    total_upserted: int = 0
    error_chunks: int = 0
    failed_chunks: List[int] = field(default_factory=list)
    final_count: Optional[int] = None

    def as_tuple(self) -> Tuple[int, int, Optional[int]]:
        return self.total_upserted, self.error_chunks, self.final_count


def chunked(sequence: Sequence, size: int) -> Iterable[Sequence]:
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for index in range(0, len(sequence), size):
        yield sequence[index : index + size]


def _upsert_chunk(
    client: SupabaseClient,
    table: str,
    chunk: Sequence[CatalogRecord],
    on_conflict: str,
) -> int:
    rows = [record.to_row() for record in chunk]
    client.upsert(table, rows, on_conflict=on_conflict, ignore_duplicates=False)
    return len(rows)


def _record_outcome(
    summary: UpsertSummary,
    index: int,
    size: int,
    error: Optional[BaseException],
) -> None:
    if error is None:
        summary.total_upserted += size
    else:
        summary.error_chunks += 1
        summary.failed_chunks.append(index)
        print(
            f"[error] {summary.label}: chunk {index}/{summary.chunk_count} "
            f"({size} records) failed: {error}",
            file=sys.stderr,
        )
    suffix = f" | {summary.error_chunks} failed chunks" if summary.error_chunks else ""
    _log(
        f"{summary.label} [{index}/{summary.chunk_count}] "
        f"{summary.total_upserted} upserted{suffix}"
    )


def _final_count(client: SupabaseClient, table: str) -> Optional[int]:
    try:
        return client.count(table)
    except CHUNK_ERRORS as exc:
        print(f"[warn] could not re-count {table}: {exc}", file=sys.stderr)
        return None


def upsert_in_batches(
    client: SupabaseClient,
    table: str,
    records: Sequence[CatalogRecord],
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_conflict: str = CONFLICT_COLUMN,
    max_workers: int = 1,
    label: str = "upsert",
) -> UpsertSummary:
    """Upsert ``records`` in chunks of ``batch_size`` and re-count the table.

    A rejected chunk is logged and counted; the remaining chunks still run
    and nothing is retried. With ``max_workers`` above one, chunks are sent
    from a bounded thread pool, each still its own failure domain.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")
    chunks = list(chunked(list(records), batch_size))
    summary = UpsertSummary(label=label, chunk_count=len(chunks))
    _log(f"{label}: {len(records)} records in {len(chunks)} chunks of {batch_size}")

    if max_workers == 1:
        for index, chunk in enumerate(chunks, start=1):
            try:
                _upsert_chunk(client, table, chunk, on_conflict)
            except CHUNK_ERRORS as exc:
                _record_outcome(summary, index, len(chunk), exc)
            else:
                _record_outcome(summary, index, len(chunk), None)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_map = {
                executor.submit(_upsert_chunk, client, table, chunk, on_conflict): (index, len(chunk))
                for index, chunk in enumerate(chunks, start=1)
            }
            for fut in as_completed(future_map):
                index, size = future_map[fut]
                try:
                    fut.result()
                except CHUNK_ERRORS as exc:
                    _record_outcome(summary, index, size, exc)
                else:
                    _record_outcome(summary, index, size, None)
        summary.failed_chunks.sort()

    summary.final_count = _final_count(client, table)
    return summary
