"""
Billing Frames

Builds Polars DataFrames from uploaded billing rows and provides the
expressions every view uses to read costs, dates and labels.

Rows arrive as loosely-typed dicts (CSV cells, JSON payloads), so every
column is kept as a nullable string and parsed at the point of use.
"""

import json
import re
import polars as pl
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_CHARGE_PERIOD_START,
    UNTAGGED_VALUES,
)

Columns = Union[str, Sequence[str]]

_COST_STRIP_PATTERN = r"[$,]"
_ISO_DATE_PATTERN = r"^(\d{4}-\d{2}-\d{2})"


# ==============================================================================
# Frame Construction
# ==============================================================================

def _to_cell(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def records_to_frame(records: Iterable[Dict[str, Any]]) -> pl.DataFrame:
    """
    Build a string-typed DataFrame from billing rows.

    Column order follows first appearance across all rows. Missing keys
    become nulls and nested values are JSON-encoded.

    Args:
        records: Billing rows

    Returns:
        DataFrame with one Utf8 column per distinct key
    """
    rows = [{key: _to_cell(value) for key, value in record.items()} for record in records]

    columns: Dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)

    schema = {column: pl.Utf8 for column in columns}
    if not rows:
        return pl.DataFrame(schema=schema)
    return pl.from_dicts(rows, schema=schema)


def frame_to_records(df: pl.DataFrame) -> List[Dict[str, Any]]:
    """Convert a frame back to row dicts, dropping helper columns."""
    visible = [c for c in df.columns if not c.startswith("_")]
    return df.select(visible).to_dicts()


# ==============================================================================
# Expressions
# ==============================================================================

def _as_columns(columns: Columns) -> List[str]:
    if isinstance(columns, str):
        return [columns]
    return list(columns)


def non_empty(expr: pl.Expr) -> pl.Expr:
    """Expression that maps empty strings to null."""
    return pl.when(expr == "").then(pl.lit(None, dtype=pl.Utf8)).otherwise(expr)


def first_present(df: pl.DataFrame, columns: Columns) -> Optional[pl.Expr]:
    """Coalesce the non-empty values of the given columns that exist in the frame."""
    present = [non_empty(pl.col(c).cast(pl.Utf8)) for c in _as_columns(columns) if c in df.columns]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return pl.coalesce(present)


def parse_cost_expr(expr: pl.Expr) -> pl.Expr:
    """Parse a string expression as a cost: `$` and `,` stripped, unparseable -> 0."""
    return (
        expr.cast(pl.Utf8)
        .str.replace_all(_COST_STRIP_PATTERN, "")
        .str.strip_chars()
        .cast(pl.Float64, strict=False)
        .fill_nan(0.0)
        .fill_null(0.0)
    )


def cost_expr(
    df: pl.DataFrame,
    column: str = COL_BILLED_COST,
    fallback: Sequence[str] = (),
) -> pl.Expr:
    """
    Numeric cost expression for a billing frame.

    Args:
        df: Billing frame
        column: Preferred cost column
        fallback: Columns used when the preferred one is empty

    Returns:
        Float64 expression, 0.0 for missing or unparseable values
    """
    source = first_present(df, [column, *fallback])
    if source is None:
        return pl.lit(0.0, dtype=pl.Float64)
    return parse_cost_expr(source)


def label_expr(
    df: pl.DataFrame,
    columns: Columns,
    default: Optional[str],
) -> pl.Expr:
    """
    Label expression with fallbacks: the first non-empty column wins,
    otherwise `default`.
    """
    source = first_present(df, columns)
    fallback = pl.lit(default, dtype=pl.Utf8)
    if source is None:
        return fallback
    if default is None:
        return source
    return pl.coalesce([source, fallback])


def date_key_expr(
    df: pl.DataFrame,
    columns: Columns = COL_CHARGE_PERIOD_START,
    default: Optional[str] = None,
) -> pl.Expr:
    """
    Day key of a timestamp column: the part before the first space or `T`.

    `2024-01-05 00:00:00` and `2024-01-05T00:00:00Z` both map to
    `2024-01-05`; non-ISO values are kept as their first token.
    """
    source = first_present(df, columns)
    if source is None:
        return pl.lit(default, dtype=pl.Utf8)
    key = non_empty(
        source.str.strip_chars()
        .str.split(" ").list.first()
        .str.split("T").list.first()
    )
    if default is None:
        return key
    return pl.coalesce([key, pl.lit(default, dtype=pl.Utf8)])


def date_expr(df: pl.DataFrame, columns: Columns = COL_CHARGE_PERIOD_START) -> pl.Expr:
    """`YYYY-MM-DD` prefix of a timestamp column, null when absent or not ISO."""
    source = first_present(df, columns)
    if source is None:
        return pl.lit(None, dtype=pl.Utf8)
    return source.str.strip_chars().str.extract(_ISO_DATE_PATTERN, 1)


def day_expr(df: pl.DataFrame, columns: Columns = COL_CHARGE_PERIOD_START) -> pl.Expr:
    """Calendar day of a timestamp column as a Date, null when unparseable."""
    return date_expr(df, columns).str.to_date("%Y-%m-%d", strict=False)


def with_cost(
    df: pl.DataFrame,
    column: str = COL_BILLED_COST,
    fallback: Sequence[str] = (),
    alias: str = "_cost",
) -> pl.DataFrame:
    """Attach the parsed cost as a helper column."""
    return df.with_columns(cost_expr(df, column, fallback).alias(alias))


def total_cost(df: pl.DataFrame, column: str = COL_BILLED_COST) -> float:
    """Sum of parsed costs."""
    if df.is_empty():
        return 0.0
    return float(df.select(cost_expr(df, column).sum()).item() or 0.0)


# ==============================================================================
# Scalar Parsers
# ==============================================================================

def parse_cost(value: Any) -> float:
    """
    Scalar cost parser.

    >>> parse_cost("$1,234.50")
    1234.5
    >>> parse_cost("n/a")
    0.0
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(re.sub(_COST_STRIP_PATTERN, "", str(value)).strip())
        except ValueError:
            return 0.0
    if number != number:
        return 0.0
    return number


def parse_tags(value: Any) -> Dict[str, Any]:
    """
    Tolerant parse of a Tags cell.

    Accepts dicts, JSON objects, and CSV-escaped JSON with doubled quotes
    or wrapping quotes. Anything else yields an empty dict.
    """
    if isinstance(value, dict):
        return value
    if not value or not isinstance(value, str):
        return {}

    text = value.strip()
    if not text or text == "{}":
        return {}

    for candidate in (text, text.replace('""', '"').strip('"')):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
        if isinstance(parsed, str):
            try:
                nested = json.loads(parsed)
            except (json.JSONDecodeError, ValueError):
                continue
            if isinstance(nested, dict):
                return nested
    return {}


def get_tag(tags: Dict[str, Any], key: str) -> Optional[str]:
    """Case-insensitive tag lookup; the first matching key wins."""
    wanted = key.lower()
    for tag_key, tag_value in tags.items():
        if str(tag_key).lower() == wanted:
            if tag_value is None or tag_value == "":
                return None
            return str(tag_value)
    return None


def is_untagged(value: Any) -> bool:
    """True when a Tags cell is empty, blank, `null` or `none`."""
    if value is None:
        return True
    if isinstance(value, dict):
        return False
    return str(value).strip().lower() in UNTAGGED_VALUES


def untagged_expr(df: pl.DataFrame) -> pl.Expr:
    """Row-level untagged flag over the `Tags` (or `Tag`) column."""
    source = first_present(df, ["Tags", "Tag"])
    if source is None:
        return pl.lit(True)
    normalized = source.str.strip_chars().str.to_lowercase()
    return normalized.is_null() | normalized.is_in(list(UNTAGGED_VALUES))
