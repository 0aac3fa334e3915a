#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM Transforms Module
Identifier normalization, cell parsing and output sanitization helpers.
"""

import logging
import math
import numbers
import re
import uuid
from typing import Any, List, Optional, Union

import numpy as np
import pandas as pd
from openpyxl.utils import get_column_letter

from .config import IDENTIFIER_PATTERN

logger = logging.getLogger(__name__)

Number = Union[int, float]

_WHITESPACE = re.compile(r"\s+")
_NOT_IDENTIFIER_CHAR = re.compile(r"[^A-Za-z0-9_]")
_NOT_ALNUM = re.compile(r"[^A-Za-z0-9]")


# ---------------------------------------------------------------------------
# CELL PREDICATES
# ---------------------------------------------------------------------------

def is_missing(value: Any) -> bool:
    """True for None and pandas/numpy null scalars (NaN, NaT)."""
    if value is None:
        return True
    if isinstance(value, str):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_blank(value: Any) -> bool:
    """True for null cells and strings that are empty after trimming."""
    if isinstance(value, str):
        return value.strip() == ""
    return is_missing(value)


def is_empty_row(row: List[Any]) -> bool:
    return all(is_blank(v) for v in row)


def cell(row: List[Any], idx: int) -> Any:
    """Positional cell access; short rows yield None."""
    if idx < len(row):
        return row[idx]
    return None


def frame_rows(df: pd.DataFrame) -> List[List[Any]]:
    """
    Convert a raw (header=None) sheet into a list of rows with None for nulls.

    Args:
        df: DataFrame as read from the workbook

    Returns:
        List of row lists, header row included
    """
    if df is None or df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).values.tolist()


def _is_numeric(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, (bool, np.bool_))


def cell_text(value: Any) -> str:
    if is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# IDENTIFIER NORMALIZER
# ---------------------------------------------------------------------------

def clean(raw: Any) -> str:
    """
    Canonicalize a free-text label into a cleaned identifier.

    Whitespace is removed along with every character outside [A-Za-z0-9_].
    Null input yields "". The result is idempotent under clean().
    """
    text = _WHITESPACE.sub("", cell_text(raw))
    return _NOT_IDENTIFIER_CHAR.sub("", text)


def match_key(raw: Any) -> str:
    """Comparison key: two labels are the same identifier iff keys are equal."""
    return clean(raw).upper()


def column_key(raw: Any) -> str:
    """Metadata column uniqueness key; underscores do not survive the final output."""
    return match_key(raw).replace("_", "")


def alnum_name(raw: Any) -> str:
    """Keep only [A-Za-z0-9]."""
    return _NOT_ALNUM.sub("", cell_text(raw)).strip()


def activity_key(raw: Any) -> str:
    return _NOT_ALNUM.sub("", cell_text(raw).lower())


def relation_key(raw: Any) -> str:
    return re.sub(r"[\s_]", "", cell_text(raw).lower())


def strip_prefix(name: str, prefix: str) -> Optional[str]:
    """Return the remainder of name after a case-insensitive prefix, else None."""
    if name is None or not prefix:
        return None
    if str(name).upper().startswith(prefix.upper()):
        return str(name)[len(prefix):]
    return None


def column_letter(idx0: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, ..."""
    return get_column_letter(idx0 + 1)


# ---------------------------------------------------------------------------
# CELL VALUE PARSER
# ---------------------------------------------------------------------------

def floor_to_one(value: Number) -> Number:
    """Zero and negative magnitudes become the unit weight 1."""
    return 1 if value <= 0 else value


def tidy_number(value: Number) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_float(raw: Any) -> Optional[float]:
    """Numeric cells and numeric-looking strings -> finite float, else None."""
    if is_blank(raw) or isinstance(raw, (bool, np.bool_)):
        return None
    if isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    elif _is_numeric(raw):
        value = float(raw)
    else:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_number(raw: Any) -> Optional[Number]:
    """
    Parse a numeric cell with the floor-at-one policy.

    Blank, boolean, non-numeric and non-finite inputs yield None.
    Finite values <= 0 become 1.
    """
    value = to_float(raw)
    if value is None:
        return None
    return floor_to_one(tidy_number(value))


def parse_metadata(raw: Any) -> Optional[str]:
    """
    Parse a metadata cell into a string.

    Values parse_number() accepts (numeric cells and numeric-looking text)
    go through the same floor-at-one policy before being stringified; other
    values are trimmed and kept, empty -> None.
    """
    if is_blank(raw):
        return None
    value = parse_number(raw)
    if value is not None:
        return str(value)
    if _is_numeric(raw):
        return None
    text = str(raw).strip()
    return text or None


# ---------------------------------------------------------------------------
# IDENTIFIERS
# ---------------------------------------------------------------------------

def new_id() -> str:
    return str(uuid.uuid4())


def is_identifier(value: Any) -> bool:
    """True when value already has the catalog-issued identifier shape."""
    return isinstance(value, str) and IDENTIFIER_PATTERN.match(value) is not None


# ---------------------------------------------------------------------------
# OUTPUT SANITIZATION
# ---------------------------------------------------------------------------

def sanitize_document(obj: Any) -> Any:
    """
    Return a copy of a JSON-like document with underscores stripped from and
    whitespace trimmed around every string value. Keys are left unchanged.
    """
    if isinstance(obj, str):
        return obj.replace("_", "").strip()
    if isinstance(obj, dict):
        return {k: sanitize_document(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_document(v) for v in obj]
    return obj
