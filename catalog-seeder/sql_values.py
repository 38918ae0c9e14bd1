"""Read and write the single-line ``INSERT ... VALUES (...) ON CONFLICT`` seed format.

The seed files are generated by ``build_seed_sql.py`` (and by older tooling
that produced the same shape), so a small hand-written scanner is enough:
only the tuple between ``VALUES (`` and ``) ON CONFLICT`` is consumed.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List, Optional

from catalog_record import (
    DEFAULT_DIFFICULTY_MAX,
    DEFAULT_DIFFICULTY_MIN,
    CatalogRecord,
    clamp_difficulty,
    decode_keywords,
    parse_difficulty,
)

MIN_FIELDS = 15

INSERT_PREFIX_RE = re.compile(r"^\s*INSERT\s+INTO\b", re.IGNORECASE)
VALUES_CLAUSE_RE = re.compile(r"VALUES\s*\((.+)\)\s*ON\s+CONFLICT", re.IGNORECASE)

INSERT_COLUMNS = (
    "type_code",
    "type_name",
    "description",
    "solution_method",
    "subject",
    "area",
    "standard_code",
    "standard_content",
    "cognitive",
    "difficulty_min",
    "difficulty_max",
    "keywords",
    "school_level",
    "level_code",
    "domain_code",
    "is_active",
)
UPDATE_COLUMNS = (
    "type_name",
    "description",
    "solution_method",
    "cognitive",
    "difficulty_min",
    "difficulty_max",
    "keywords",
)

SKIP_NOT_INSERT = "not_insert"
SKIP_NO_VALUES = "no_values_clause"
SKIP_TOO_FEW_FIELDS = "too_few_fields"
SKIP_MISSING_CODE = "missing_code"

# scanner states
SKIP_SPACE = "skip_space"
IN_QUOTED_STRING = "in_quoted_string"
IN_ESCAPE_STRING = "in_escape_string"
IN_BARE_TOKEN = "in_bare_token"
AFTER_QUOTED_STRING = "after_quoted_string"

# backslash sequences understood inside E'...' literals
ESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


@dataclass(frozen=True)
class ParsedLine:
    record: Optional[CatalogRecord]
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class ValueToken:
    text: str
    quoted: bool


def tokenize_values_tuple(raw: str) -> List[ValueToken]:
    """Split the inside of a ``VALUES (...)`` tuple into tokens.

    Quoted strings lose their quotes and have ``''`` decoded to ``'``.
    ``E'...'`` strings additionally decode backslash escapes (``\\n``,
    ``\\r``, ``\\t``, ``\\\\``). Bare tokens (numbers, ``NULL``, ``true``)
    are trimmed and kept verbatim with ``quoted=False``. Anything between a
    closing quote and the next comma, such as a ``::jsonb`` cast, is
    dropped. A ``)`` outside a string ends the tuple. Every step advances
    the cursor, so malformed input terminates at the end of the string.
    """
    tokens: List[ValueToken] = []
    buffer: List[str] = []
    state = SKIP_SPACE
    expecting_field = False
    index = 0
    length = len(raw)

    while index < length:
        char = raw[index]
        if state == SKIP_SPACE:
            if char == "'":
                state = IN_QUOTED_STRING
                expecting_field = False
            elif char in "Ee" and index + 1 < length and raw[index + 1] == "'":
                state = IN_ESCAPE_STRING
                expecting_field = False
                index += 1
            elif char == ",":
                tokens.append(ValueToken("", False))
                expecting_field = True
            elif char == ")":
                break
            elif not char.isspace():
                buffer.append(char)
                state = IN_BARE_TOKEN
                expecting_field = False
            index += 1
        elif state in (IN_QUOTED_STRING, IN_ESCAPE_STRING):
            if char == "'":
                if index + 1 < length and raw[index + 1] == "'":
                    buffer.append("'")
                    index += 2
                    continue
                tokens.append(ValueToken("".join(buffer), True))
                buffer = []
                state = AFTER_QUOTED_STRING
            elif char == "\\" and state == IN_ESCAPE_STRING and index + 1 < length:
                escaped = raw[index + 1]
                buffer.append(ESCAPES.get(escaped, escaped))
                index += 1
            else:
                buffer.append(char)
            index += 1
        elif state == IN_BARE_TOKEN:
            if char == "," or char == ")":
                tokens.append(ValueToken("".join(buffer).strip(), False))
                buffer = []
                state = SKIP_SPACE
                if char == ")":
                    return tokens
                expecting_field = True
            else:
                buffer.append(char)
            index += 1
        else:  # AFTER_QUOTED_STRING
            if char == ",":
                state = SKIP_SPACE
                expecting_field = True
            elif char == ")":
                return tokens
            index += 1

    if state in (IN_QUOTED_STRING, IN_ESCAPE_STRING):
        tokens.append(ValueToken("".join(buffer), True))
    elif state == IN_BARE_TOKEN:
        tokens.append(ValueToken("".join(buffer).strip(), False))
    elif state == SKIP_SPACE and expecting_field:
        tokens.append(ValueToken("", False))
    return tokens


def split_values_tuple(raw: str) -> List[str]:
    """Field texts of :func:`tokenize_values_tuple`, quoted or not."""
    return [token.text for token in tokenize_values_tuple(raw)]


def extract_values_tuple(line: str) -> Optional[str]:
    match = VALUES_CLAUSE_RE.search(line)
    if not match:
        return None
    return match.group(1)


def parse_insert_line(line: str) -> ParsedLine:
    """Turn one seed line into a record, or report why it was skipped."""
    if not INSERT_PREFIX_RE.match(line):
        return ParsedLine(None, SKIP_NOT_INSERT)
    raw = extract_values_tuple(line)
    if raw is None:
        return ParsedLine(None, SKIP_NO_VALUES)
    tokens = tokenize_values_tuple(raw)
    if len(tokens) < MIN_FIELDS:
        return ParsedLine(None, SKIP_TOO_FEW_FIELDS)

    code = _text(tokens[0]).strip()
    if not code:
        return ParsedLine(None, SKIP_MISSING_CODE)

    record = CatalogRecord(
        code=code,
        name=_text(tokens[1]),
        description=_text(tokens[2]),
        solution_method=_text(tokens[3]),
        subject=_text(tokens[4]),
        area=_text(tokens[5]),
        standard_code=_text(tokens[6]),
        standard_content=_text(tokens[7]),
        cognitive_tag=_text(tokens[8]),
        difficulty_min=clamp_difficulty(parse_difficulty(tokens[9].text, DEFAULT_DIFFICULTY_MIN)),
        difficulty_max=clamp_difficulty(parse_difficulty(tokens[10].text, DEFAULT_DIFFICULTY_MAX)),
        keywords=decode_keywords(tokens[11].text),
        school_level=_text(tokens[12]),
        level_code=_text(tokens[13]),
        domain_code=_text(tokens[14]),
    )
    return ParsedLine(record)


def _text(token: ValueToken) -> str:
    # only an unquoted NULL is SQL null; 'NULL' is text
    if not token.text.strip() or (token.text == "NULL" and not token.quoted):
        return ""
    return token.text


# ---- Rendering ---------------------------------------------------------
def quote_literal(value: str) -> str:
    """Quote ``value`` as a literal that stays on one line.

    Values holding a line break are written as ``E'...'`` with the break
    and any backslash escaped; everything else is a plain ``'...'``.
    """
    quoted = value.replace("'", "''")
    if "\n" not in value and "\r" not in value:
        return "'" + quoted + "'"
    quoted = quoted.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r")
    return "E'" + quoted + "'"


def render_insert(record: CatalogRecord, table: str) -> str:
    """Render a record as one ``INSERT ... ON CONFLICT DO UPDATE`` line."""
    keywords = json.dumps(list(record.keywords), ensure_ascii=False)
    values = ", ".join(
        [
            quote_literal(record.code),
            quote_literal(record.name),
            quote_literal(record.description),
            quote_literal(record.solution_method),
            quote_literal(record.subject),
            quote_literal(record.area),
            quote_literal(record.standard_code),
            quote_literal(record.standard_content),
            quote_literal(record.cognitive_tag),
            str(clamp_difficulty(record.difficulty_min)),
            str(clamp_difficulty(record.difficulty_max)),
            quote_literal(keywords) + "::jsonb",
            quote_literal(record.school_level),
            quote_literal(record.level_code),
            quote_literal(record.domain_code),
            "true",
        ]
    )
    updates = ", ".join(f"{column}=EXCLUDED.{column}" for column in UPDATE_COLUMNS)
    return (
        f"INSERT INTO {table} ({', '.join(INSERT_COLUMNS)}) VALUES ({values}) "
        f"ON CONFLICT (type_code) DO UPDATE SET {updates}, updated_at=NOW();"
    )
