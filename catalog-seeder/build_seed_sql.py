#!/usr/bin/env python3
"""Render the generation files into a seed SQL file.

Every record becomes one ``INSERT ... ON CONFLICT (type_code) DO UPDATE``
line, grouped under a comment header per batch. The output can be applied
in the Supabase SQL editor or fed back to ``seed_expanded_types.py`` as its
legacy seed file.

Usage
-----
python build_seed_sql.py \
    --sources-dir data/expansions \
    --sources v2,v3,v4 \
    --output data/seed_expanded_types_v2.sql
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from catalog_merge import merge_last_write_wins
from catalog_sources import SourceBatch, SourceFormatError, generation_paths, load_generations
from sql_values import render_insert

ROOT = Path(__file__).resolve().parent
DEFAULT_SOURCES_DIR = ROOT / "data" / "expansions"
DEFAULT_OUTPUT = ROOT / "data" / "seed_expanded_types_v2.sql"
DEFAULT_SOURCES = "v2,v3,v3_supplement,v4,v4_supplement"
DEFAULT_TABLE = "expanded_math_types"
RULE = "-- " + "=" * 76


def _log(msg: str) -> None:
    print(f"[build] {msg}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build a seed SQL file from the catalog generation files."
    )
    parser.add_argument(
        "--sources-dir",
        type=Path,
        default=DEFAULT_SOURCES_DIR,
        help=f"Directory holding <generation>.json files (default: {DEFAULT_SOURCES_DIR})",
    )
    parser.add_argument(
        "--sources",
        default=DEFAULT_SOURCES,
        help=f"Comma-separated generations in priority order (default: {DEFAULT_SOURCES})",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT,
        help=f"Destination SQL file (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "--table",
        default=DEFAULT_TABLE,
        help=f"Table named in the INSERT statements (default: {DEFAULT_TABLE})",
    )
    return parser.parse_args(argv)


def render_seed_sql(batches: Sequence[SourceBatch], table: str, generated: date) -> str:
    lines: List[str] = [
        RULE,
        "-- Expanded problem-type seed data",
        f"-- Generated: {generated.isoformat()}",
        RULE,
        "",
    ]
    total = 0
    for batch in batches:
        lines.append("")
        lines.append(f"-- === {batch.name}: {len(batch)} records ===")
        for record in batch.records:
            lines.append(render_insert(record, table))
        total += len(batch)
    lines.append("")
    lines.append(f"-- Total records: {total}")
    return "\n".join(lines) + "\n"


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    names = [name.strip() for name in args.sources.split(",") if name.strip()]
    paths = generation_paths(args.sources_dir, names)
    missing = [path for path in paths if not path.exists()]
    if missing:
        for path in missing:
            print(f"error: {path} does not exist.", file=sys.stderr)
        return 1

    try:
        batches = load_generations(paths)
    except SourceFormatError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    for batch in batches:
        _log(f"{batch.name}: {len(batch)} records")

    merged = merge_last_write_wins(batches)
    if merged.overrides:
        print(
            f"[warn] {len(merged.overrides)} duplicate type codes found: "
            f"{', '.join(merged.duplicate_examples(10))}",
            file=sys.stderr,
        )

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(render_seed_sql(batches, args.table, date.today()), encoding="utf-8")
    _log(f"wrote {merged.total_in} statements to {args.output}")
    _log(f"unique type codes: {len(merged.records)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
