from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pytest

from catalog_record import CatalogRecord
from sql_values import render_insert
from supabase_client import SupabaseError


class FakeStore:
    """In-memory stand-in for the PostgREST table, keyed on the conflict column."""

    def __init__(
        self,
        exists: bool = True,
        fail_calls: Iterable[int] = (),
        fail_codes: Iterable[str] = (),
    ) -> None:
        self.exists = exists
        self.fail_calls = set(fail_calls)
        self.fail_codes = set(fail_codes)
        self.rows: Dict[str, dict] = {}
        self.calls: List[dict] = []
        self.count_error: Optional[Exception] = None
        self._lock = threading.Lock()

    def table_exists(self, table: str) -> bool:
        return self.exists

    def count(self, table: str) -> int:
        if self.count_error is not None:
            raise self.count_error
        return len(self.rows)

    def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        on_conflict: str,
        ignore_duplicates: bool = False,
    ) -> List[dict]:
        with self._lock:
            self.calls.append(
                {
                    "table": table,
                    "rows": list(rows),
                    "on_conflict": on_conflict,
                    "ignore_duplicates": ignore_duplicates,
                }
            )
            call_number = len(self.calls)
            if call_number in self.fail_calls or any(
                row[on_conflict] in self.fail_codes for row in rows
            ):
                raise SupabaseError("chunk rejected", status_code=400)
            for row in rows:
                self.rows[row[on_conflict]] = dict(row)
        return []

    def close(self) -> None:
        pass


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_record() -> Callable[..., CatalogRecord]:
    def _make(code: str, **fields) -> CatalogRecord:
        fields.setdefault("name", f"name {code}")
        return CatalogRecord(code=code, **fields)

    return _make


def record_mapping(code: str, **fields) -> dict:
    mapping = {
        "type_code": code,
        "type_name": f"name {code}",
        "description": "",
        "solution_method": "",
        "subject": "수학",
        "area": "다항식",
        "standard_code": "[10수학01-01]",
        "standard_content": "",
        "cognitive": "CALCULATION",
        "difficulty_min": 1,
        "difficulty_max": 3,
        "keywords": [],
        "school_level": "고등학교",
        "level_code": "HS0",
        "domain_code": "POL",
    }
    mapping.update(fields)
    return mapping


def write_generation(directory: Path, name: str, batches: Dict[str, List[dict]]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.json"
    path.write_text(json.dumps(batches, ensure_ascii=False), encoding="utf-8")
    return path


def write_seed_sql(path: Path, records: Iterable[CatalogRecord], extra_lines: Iterable[str] = ()) -> Path:
    lines = ["-- seed", ""]
    lines.extend(render_insert(record, "expanded_math_types") for record in records)
    lines.extend(extra_lines)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
