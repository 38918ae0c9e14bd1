from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from catalog_record import CatalogRecord
from sql_values import (
    SKIP_MISSING_CODE,
    SKIP_NO_VALUES,
    SKIP_NOT_INSERT,
    SKIP_TOO_FEW_FIELDS,
    ValueToken,
    parse_insert_line,
    quote_literal,
    render_insert,
    split_values_tuple,
    tokenize_values_tuple,
)

HEADER = "INSERT INTO expanded_math_types (type_code, type_name) VALUES"


def _line(values: str) -> str:
    return f"{HEADER} ({values}) ON CONFLICT (type_code) DO NOTHING;"


def _fields(
    code: str = "MA-HS0-POL-01-001",
    difficulty_min: str = "1",
    difficulty_max: str = "3",
    keywords: str = "'[\"a\", \"b\"]'",
) -> str:
    quoted = [f"'{code}'"] + [f"'text {i}'" for i in range(1, 9)]
    tail = ["'고등학교'", "'HS0'", "'POL'"]
    return ", ".join(quoted + [difficulty_min, difficulty_max, keywords] + tail)


def test_split_mixed_quoted_and_bare_fields():
    assert split_values_tuple("'a', 12, NULL, 'b c' , true") == ["a", "12", "NULL", "b c", "true"]


def test_split_decodes_doubled_quotes():
    assert split_values_tuple("'it''s', '''', ''") == ["it's", "'", ""]


def test_split_keeps_separators_inside_strings():
    assert split_values_tuple("'f(a), then g(b)', 2") == ["f(a), then g(b)", "2"]


def test_split_drops_cast_after_string():
    assert split_values_tuple("'[\"x\"]'::jsonb, 'next'") == ['["x"]', "next"]


def test_split_closing_paren_ends_tuple():
    assert split_values_tuple("'a', 1) trailing, 'junk'") == ["a", "1"]


def test_split_unterminated_string_runs_to_end():
    assert split_values_tuple("'a', 'never closed, 3") == ["a", "never closed, 3"]


def test_split_decodes_escape_strings():
    assert split_values_tuple("E'line one\\nline two', e'c:\\\\tmp\\r', 'plain\\n'") == [
        "line one\nline two",
        "c:\\tmp\r",
        "plain\\n",
    ]


def test_tokenize_marks_quoted_fields():
    assert tokenize_values_tuple("NULL, 'NULL', 3") == [
        ValueToken("NULL", False),
        ValueToken("NULL", True),
        ValueToken("3", False),
    ]


def test_quote_literal_keeps_line_breaks_on_one_line():
    assert quote_literal("it's") == "'it''s'"
    assert quote_literal("a\\b") == "'a\\b'"
    assert quote_literal("a\nb\\c") == "E'a\\nb\\\\c'"
    assert "\r" not in quote_literal("a\r\nb")


def test_split_empty_and_trailing_fields():
    assert split_values_tuple("") == []
    assert split_values_tuple("1,,2") == ["1", "", "2"]
    assert split_values_tuple("1, ") == ["1", ""]


@given(st.lists(st.text(), max_size=20))
def test_split_round_trips_quoted_fields(fields):
    assert split_values_tuple(", ".join(quote_literal(field) for field in fields)) == fields


@given(st.text(alphabet="'(), aEb\\:\n", max_size=200))
def test_split_terminates_on_arbitrary_input(raw):
    result = split_values_tuple(raw)
    assert all(isinstance(field, str) for field in result)
    assert len(result) <= len(raw) + 1


def test_parse_requires_fifteen_fields():
    fourteen = ", ".join(f"'v{i}'" for i in range(14))
    assert parse_insert_line(_line(fourteen)).reason == SKIP_TOO_FEW_FIELDS

    parsed = parse_insert_line(_line(_fields()))
    assert parsed.ok
    assert parsed.record.code == "MA-HS0-POL-01-001"


def test_parse_maps_fields_by_position():
    record = parse_insert_line(_line(_fields())).record
    assert record.name == "text 1"
    assert record.cognitive_tag == "text 8"
    assert record.keywords == ("a", "b")
    assert (record.school_level, record.level_code, record.domain_code) == ("고등학교", "HS0", "POL")


def test_parse_clamps_difficulty_pairs():
    for raw, expected in [(("0", "1"), (1, 1)), (("3", "12"), (3, 5)), (("-5", "7"), (1, 5))]:
        record = parse_insert_line(_line(_fields(difficulty_min=raw[0], difficulty_max=raw[1]))).record
        assert (record.difficulty_min, record.difficulty_max) == expected


def test_parse_defaults_unparsable_difficulty():
    record = parse_insert_line(_line(_fields(difficulty_min="NULL", difficulty_max="'hard'"))).record
    assert (record.difficulty_min, record.difficulty_max) == (1, 3)


def test_parse_keeps_inverted_range():
    record = parse_insert_line(_line(_fields(difficulty_min="5", difficulty_max="1"))).record
    assert (record.difficulty_min, record.difficulty_max) == (5, 1)


def test_parse_keyword_fallback():
    for keywords, expected in [
        ("'not json'", ()),
        ("'{\"a\":1}'", ()),
        ("'[\"a\",\"b\"]'", ("a", "b")),
        ("NULL", ()),
    ]:
        assert parse_insert_line(_line(_fields(keywords=keywords))).record.keywords == expected


def test_parse_blank_text_and_null_become_empty():
    values = _fields().replace("'text 2'", "NULL").replace("'text 3'", "'   '")
    record = parse_insert_line(_line(values)).record
    assert record.description == ""
    assert record.solution_method == ""


def test_parse_keeps_quoted_null_text():
    record = parse_insert_line(_line(_fields().replace("'text 2'", "'NULL'"))).record
    assert record.description == "NULL"


def test_parse_skip_reasons():
    assert parse_insert_line("-- comment").reason == SKIP_NOT_INSERT
    assert parse_insert_line("UPDATE expanded_math_types SET x = 1;").reason == SKIP_NOT_INSERT
    assert parse_insert_line(f"{HEADER} ('a', 'b');").reason == SKIP_NO_VALUES
    assert parse_insert_line(_line(_fields(code=""))).reason == SKIP_MISSING_CODE


def test_parse_reads_rendered_statement():
    record = CatalogRecord(
        code="MA-HS0-POL-03-001",
        name="나머지정리",
        description="f(a)로 나머지를 구하는 '기본' 유형",
        solution_method="대입",
        subject="수학",
        area="다항식",
        standard_code="[10수학01-03]",
        standard_content="나머지정리를 활용할 수 있다.",
        cognitive_tag="UNDERSTANDING",
        difficulty_min=2,
        difficulty_max=4,
        keywords=("나머지정리", "it's"),
        school_level="고등학교",
        level_code="HS0",
        domain_code="POL",
    )
    line = render_insert(record, "expanded_math_types")
    assert "\n" not in line
    assert parse_insert_line(line).record == record


def test_parse_reads_rendered_multiline_text():
    record = CatalogRecord(
        code="MA-HS0-POL-03-002",
        name="a\nb",
        description="line one\r\nline two with a \\ backslash",
        standard_content="'NULL'\n",
        keywords=("x\ny",),
    )
    line = render_insert(record, "expanded_math_types")
    assert "\n" not in line and "\r" not in line
    assert parse_insert_line(line).record == record


def test_render_clamps_out_of_range_difficulty():
    line = render_insert(CatalogRecord(code="X", difficulty_min=0, difficulty_max=9), "t")
    record = parse_insert_line(line).record
    assert (record.difficulty_min, record.difficulty_max) == (1, 5)
