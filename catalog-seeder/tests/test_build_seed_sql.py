from __future__ import annotations

from datetime import date

import build_seed_sql
from catalog_sources import load_generations, scan_seed_file, scan_seed_lines
from conftest import record_mapping, write_generation


def _write_sources(directory):
    write_generation(
        directory,
        "v2",
        {
            "HS0_EXPANSION": [
                record_mapping("A", type_name="곱셈 공식", description="'기본' 유형", keywords=["k's"]),
                record_mapping("B"),
            ]
        },
    )
    write_generation(directory, "v4", {"HS0_V4": [record_mapping("A", type_name="수능", difficulty_max=8)]})


def test_rendered_sql_is_readable_by_the_seed_scanner(tmp_path):
    _write_sources(tmp_path)
    batches = load_generations([tmp_path / "v2.json", tmp_path / "v4.json"])
    sql = build_seed_sql.render_seed_sql(batches, "expanded_math_types", date(2025, 3, 1))

    assert "-- Generated: 2025-03-01" in sql
    assert "-- === v2/HS0_EXPANSION: 2 records ===" in sql
    assert "-- Total records: 3" in sql

    scan = scan_seed_lines(sql.splitlines(), tmp_path / "rendered.sql")
    assert scan.skipped_total == 0
    assert [record.code for record in scan.records] == ["A", "B", "A"]
    assert scan.records[0] == batches[0].records[0]
    assert scan.records[2].difficulty_max == 5


def test_main_writes_output_and_warns_on_duplicates(tmp_path, capsys):
    _write_sources(tmp_path / "expansions")
    output = tmp_path / "out" / "seed.sql"

    code = build_seed_sql.main(
        ["--sources-dir", str(tmp_path / "expansions"), "--sources", "v2,v4", "--output", str(output)]
    )

    assert code == 0
    assert len(scan_seed_file(output).records) == 3
    captured = capsys.readouterr()
    assert "1 duplicate type codes found: A" in captured.err
    assert "unique type codes: 2" in captured.out


def test_main_fails_on_missing_generation(tmp_path, capsys):
    code = build_seed_sql.main(["--sources-dir", str(tmp_path), "--sources", "v2"])
    assert code == 1
    assert "v2.json does not exist" in capsys.readouterr().err
