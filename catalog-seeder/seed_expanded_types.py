#!/usr/bin/env python3
"""Seed the ``expanded_math_types`` catalog table in Supabase.

Runs two passes over overlapping data:

1. the legacy seed SQL file on its own, parsed line by line and upserted;
2. the legacy file again plus every generation file, merged by
   ``type_code`` (last write wins) and upserted.

Both passes upsert on ``type_code`` with merge-duplicates, so re-running the
script converges to the same table contents. A rejected chunk is reported
and skipped; only configuration problems (missing credentials or inputs, a
missing or unreachable table) stop the run.

Usage:
    python catalog-seeder/seed_expanded_types.py

Requires SUPABASE_URL (or NEXT_PUBLIC_SUPABASE_URL) and
SUPABASE_SERVICE_ROLE_KEY in the environment or a .env file.
"""

from __future__ import annotations

import os
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

import requests
from dotenv import find_dotenv, load_dotenv

from batch_upsert import DEFAULT_BATCH_SIZE, UpsertSummary, upsert_in_batches
from catalog_merge import audit_difficulty, merge_last_write_wins
from catalog_record import CatalogRecord
from catalog_sources import (
    SourceBatch,
    SourceFormatError,
    collect_sources,
    describe_skips,
    generation_paths,
    load_generations,
    scan_seed_file,
)
from supabase_client import SupabaseClient, SupabaseError

ROOT = Path(__file__).resolve().parent
DATA_DIR = ROOT / "data"
ENV_PATH = ROOT / ".env"

DEFAULT_TABLE = "expanded_math_types"
DEFAULT_SEED_SQL = DATA_DIR / "seed_expanded_types.sql"
DEFAULT_SOURCES_DIR = DATA_DIR / "expansions"
DEFAULT_SOURCES: Tuple[str, ...] = ("v2", "v3", "v3_supplement", "v4", "v4_supplement")
DEFAULT_WORKERS = 1
MIGRATION_FILE = "database/migrations/005_expanded_math_types.sql"


def _log(msg: str) -> None:
    print(f"[seed] {msg}")


def _warn(msg: str) -> None:
    print(f"[warn] {msg}", file=sys.stderr)


class ConfigurationError(RuntimeError):
    """Raised when the run cannot start safely; nothing has been written."""


def _positive_int(
    env: Mapping[str, str], name: str, default: int, problems: List[str]
) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        problems.append(f"{name} must be an integer, got {raw!r}")
        return default
    if value < 1:
        problems.append(f"{name} must be at least 1, got {value}")
        return default
    return value


@dataclass(frozen=True)
class SeedConfig:
    supabase_url: str
    service_role_key: str
    table: str = DEFAULT_TABLE
    seed_sql_path: Path = DEFAULT_SEED_SQL
    sources_dir: Path = DEFAULT_SOURCES_DIR
    sources: Tuple[str, ...] = DEFAULT_SOURCES
    batch_size: int = DEFAULT_BATCH_SIZE
    upsert_workers: int = DEFAULT_WORKERS

    @property
    def generation_paths(self) -> List[Path]:
        return generation_paths(self.sources_dir, self.sources)

    def missing_inputs(self) -> List[str]:
        problems: List[str] = []
        if not self.seed_sql_path.exists():
            problems.append(f"seed file {self.seed_sql_path} does not exist")
        for path in self.generation_paths:
            if not path.exists():
                problems.append(f"generation file {path} does not exist")
        return problems

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SeedConfig":
        """Read and validate the configuration, reporting every problem at once."""
        env = os.environ if environ is None else environ
        problems: List[str] = []

        supabase_url = (
            env.get("SUPABASE_URL") or env.get("NEXT_PUBLIC_SUPABASE_URL") or ""
        ).strip()
        service_role_key = (env.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        if not supabase_url:
            problems.append("SUPABASE_URL (or NEXT_PUBLIC_SUPABASE_URL) is not set")
        if not service_role_key:
            problems.append("SUPABASE_SERVICE_ROLE_KEY is not set")

        sources = tuple(
            name.strip() for name in (env.get("SEED_SOURCES") or "").split(",") if name.strip()
        )
        config = cls(
            supabase_url=supabase_url,
            service_role_key=service_role_key,
            table=(env.get("SEED_TABLE") or "").strip() or DEFAULT_TABLE,
            seed_sql_path=Path(env.get("SEED_SQL_PATH") or DEFAULT_SEED_SQL),
            sources_dir=Path(env.get("SEED_SOURCES_DIR") or DEFAULT_SOURCES_DIR),
            sources=sources or DEFAULT_SOURCES,
            batch_size=_positive_int(env, "SEED_BATCH_SIZE", DEFAULT_BATCH_SIZE, problems),
            upsert_workers=_positive_int(env, "SEED_UPSERT_WORKERS", DEFAULT_WORKERS, problems),
        )
        problems.extend(config.missing_inputs())
        if problems:
            raise ConfigurationError(
                "invalid configuration:\n  - " + "\n  - ".join(problems)
            )
        return config


@dataclass
class PhaseReport:
    name: str
    records_in: int
    upsert: UpsertSummary
    skipped: int = 0
    duplicates: int = 0
    duplicate_examples: List[str] = field(default_factory=list)
    difficulty_issues: int = 0


@dataclass
class SeedReport:
    initial_count: int
    legacy: PhaseReport
    merge: PhaseReport

    @property
    def final_count(self) -> Optional[int]:
        return self.merge.upsert.final_count

    @property
    def error_chunks(self) -> int:
        return self.legacy.upsert.error_chunks + self.merge.upsert.error_chunks


def missing_table_message(config: SeedConfig) -> str:
    return (
        f"table {config.table!r} does not exist or is not readable at {config.supabase_url}.\n"
        "  1. Open the Supabase SQL editor for the project.\n"
        f"  2. Run the migration in {MIGRATION_FILE}.\n"
        "  3. Re-run this script."
    )


class SeedPipeline:
    """CHECK_TARGET -> LEGACY_PHASE -> MERGE_PHASE -> REPORT."""

    def __init__(self, config: SeedConfig, client: SupabaseClient) -> None:
        self.config = config
        self.client = client

    def check_target(self) -> int:
        table = self.config.table
        _log(f"checking table {table} at {self.config.supabase_url}")
        try:
            exists = self.client.table_exists(table)
            if not exists:
                raise ConfigurationError(missing_table_message(self.config))
            count = self.client.count(table)
        except (SupabaseError, requests.RequestException) as exc:
            raise ConfigurationError(
                f"cannot reach {table} at {self.config.supabase_url}: {exc}"
            ) from exc
        _log(f"table {table} present with {count} rows")
        return count

    def load_generations(self) -> List[SourceBatch]:
        try:
            return load_generations(self.config.generation_paths)
        except SourceFormatError as exc:
            raise ConfigurationError(f"unreadable generation source: {exc}") from exc

    def _upsert(self, records: Sequence[CatalogRecord], label: str) -> UpsertSummary:
        return upsert_in_batches(
            self.client,
            self.config.table,
            records,
            batch_size=self.config.batch_size,
            max_workers=self.config.upsert_workers,
            label=label,
        )

    def run_legacy_phase(self) -> PhaseReport:
        scan = scan_seed_file(self.config.seed_sql_path)
        _log(
            f"legacy: parsed {len(scan.records)} records from {scan.path.name} "
            f"({scan.lines_scanned} lines, skipped: {describe_skips(scan)})"
        )
        summary = self._upsert(scan.records, "legacy")
        _log(f"legacy: table has {_format_count(summary.final_count)} rows")
        return PhaseReport(
            name="legacy",
            records_in=len(scan.records),
            upsert=summary,
            skipped=scan.skipped_total,
        )

    def run_merge_phase(self, generations: Optional[Sequence[SourceBatch]] = None) -> PhaseReport:
        if generations is None:
            generations = self.load_generations()
        scan = scan_seed_file(self.config.seed_sql_path)
        batches = collect_sources(scan, generations)

        issues = audit_difficulty(batches)
        if issues:
            kinds = Counter(issue.kind for issue in issues)
            _warn(
                "difficulty issues: "
                + ", ".join(f"{kind}={count}" for kind, count in sorted(kinds.items()))
            )
            for issue in issues[:5]:
                _warn(
                    f"  {issue.batch} {issue.code} min={issue.difficulty_min} "
                    f"max={issue.difficulty_max} ({issue.kind})"
                )

        merged = merge_last_write_wins(batches)
        _log(
            f"merge: loaded {merged.total_in} records from {len(batches)} batches "
            f"-> {len(merged.records)} unique codes"
        )
        if merged.duplicates:
            _log(
                f"merge: {merged.duplicates} duplicate records overridden "
                f"(e.g. {', '.join(merged.duplicate_examples())})"
            )
        summary = self._upsert(merged.records, "merge")
        return PhaseReport(
            name="merge",
            records_in=merged.total_in,
            upsert=summary,
            skipped=scan.skipped_total,
            duplicates=merged.duplicates,
            duplicate_examples=merged.duplicate_examples(),
            difficulty_issues=len(issues),
        )

    def run(self) -> SeedReport:
        initial_count = self.check_target()
        generations = self.load_generations()
        legacy = self.run_legacy_phase()
        merge = self.run_merge_phase(generations)
        return SeedReport(initial_count=initial_count, legacy=legacy, merge=merge)


def _format_count(count: Optional[int]) -> str:
    return "unknown" if count is None else str(count)


def print_report(report: SeedReport) -> None:
    print()
    print("=" * 50)
    print("Seeding complete!")
    for phase in (report.legacy, report.merge):
        print(
            f"  {phase.name}: {phase.upsert.total_upserted}/{phase.records_in} upserted, "
            f"{phase.upsert.error_chunks}/{phase.upsert.chunk_count} chunks failed"
        )
    print(f"  Duplicates overridden: {report.merge.duplicates}")
    print(f"  Difficulty issues: {report.merge.difficulty_issues}")
    print(f"  Rows before: {report.initial_count}")
    print(f"  Rows after: {_format_count(report.final_count)}")
    if report.error_chunks:
        print("  Some chunks failed; re-run the script once the cause is fixed.")


def load_env() -> None:
    """Fill missing environment variables from .env files; existing values win."""
    load_dotenv(dotenv_path=ENV_PATH, override=False)
    cwd_env = find_dotenv(usecwd=True)
    if cwd_env:
        load_dotenv(dotenv_path=cwd_env, override=False)


def main() -> int:
    load_env()
    try:
        config = SeedConfig.from_env()
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    client = SupabaseClient(config.supabase_url, config.service_role_key)
    try:
        report = SeedPipeline(config, client).run()
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()

    print_report(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
