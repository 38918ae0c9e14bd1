"""Canonical shape of one expanded problem-type entry.

Every source (the legacy seed SQL file and the JSON generation files) is
turned into :class:`CatalogRecord` values before anything is merged or
written, so the rest of the pipeline only deals with one record shape.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

DIFFICULTY_FLOOR = 1
DIFFICULTY_CEILING = 5
DEFAULT_DIFFICULTY_MIN = 1
DEFAULT_DIFFICULTY_MAX = 3
CONFLICT_COLUMN = "type_code"

# attribute name -> store column
TEXT_COLUMNS = (
    ("name", "type_name"),
    ("description", "description"),
    ("solution_method", "solution_method"),
    ("subject", "subject"),
    ("area", "area"),
    ("standard_code", "standard_code"),
    ("standard_content", "standard_content"),
    ("cognitive_tag", "cognitive"),
    ("school_level", "school_level"),
    ("level_code", "level_code"),
    ("domain_code", "domain_code"),
)


@dataclass(frozen=True)
class CatalogRecord:
    code: str
    name: str = ""
    description: str = ""
    solution_method: str = ""
    subject: str = ""
    area: str = ""
    standard_code: str = ""
    standard_content: str = ""
    cognitive_tag: str = ""
    difficulty_min: int = DEFAULT_DIFFICULTY_MIN
    difficulty_max: int = DEFAULT_DIFFICULTY_MAX
    keywords: Tuple[str, ...] = ()
    school_level: str = ""
    level_code: str = ""
    domain_code: str = ""

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CatalogRecord":
        """Build a record from a column-named mapping.

        Types are coerced but difficulties are left unclamped so callers can
        audit the raw values; :meth:`to_row` clamps on write.
        """
        code = _clean_text(mapping.get(CONFLICT_COLUMN))
        if not code:
            raise ValueError(f"record without {CONFLICT_COLUMN}: {dict(mapping)!r}")
        texts = {attr: _clean_text(mapping.get(column)) for attr, column in TEXT_COLUMNS}
        keywords = mapping.get("keywords")
        if isinstance(keywords, str):
            keyword_tuple = decode_keywords(keywords)
        elif isinstance(keywords, (list, tuple)):
            keyword_tuple = tuple(str(item) for item in keywords)
        else:
            keyword_tuple = ()
        return cls(
            code=code,
            difficulty_min=_coerce_difficulty(mapping.get("difficulty_min"), DEFAULT_DIFFICULTY_MIN),
            difficulty_max=_coerce_difficulty(mapping.get("difficulty_max"), DEFAULT_DIFFICULTY_MAX),
            keywords=keyword_tuple,
            **texts,
        )

    def to_row(self) -> Dict[str, Any]:
        """Payload for the destination table, clamped and marked active."""
        row: Dict[str, Any] = {CONFLICT_COLUMN: self.code}
        for attr, column in TEXT_COLUMNS:
            row[column] = getattr(self, attr)
        row["difficulty_min"] = clamp_difficulty(self.difficulty_min)
        row["difficulty_max"] = clamp_difficulty(self.difficulty_max)
        row["keywords"] = list(self.keywords)
        row["is_active"] = True
        return row


def clamp_difficulty(value: int) -> int:
    return min(DIFFICULTY_CEILING, max(DIFFICULTY_FLOOR, value))


def parse_difficulty(value: Optional[str], default: int) -> int:
    cleaned = (value or "").strip()
    if not cleaned:
        return default
    try:
        return int(float(cleaned))
    except (ValueError, OverflowError):
        return default


def decode_keywords(value: Optional[str]) -> Tuple[str, ...]:
    """Decode a JSON array literal; anything else becomes an empty tuple."""
    if not value or not value.strip():
        return ()
    try:
        decoded = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return ()
    if not isinstance(decoded, list):
        return ()
    return tuple(str(item) for item in decoded)


def _coerce_difficulty(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return parse_difficulty(repr(value), default)
    if isinstance(value, str):
        return parse_difficulty(value, default)
    return default


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
