"""Read raw audience-retention exports into a clean samples table."""

from __future__ import annotations

import csv
from dataclasses import dataclass
import io
import logging
import math
from typing import Sequence

import pandas as pd

from .constants import (
    HEADER_RETENTION_MARKER,
    HEADER_TIME_MARKER,
    RETENTION_KEYWORDS,
    REWATCH_KEYWORDS,
    TIME_KEYWORDS,
)
from .errors import MalformedRetentionData

LOGGER = logging.getLogger(__name__)

SAMPLE_COLUMNS = ("time", "value")


@dataclass(frozen=True)
class ColumnMatch:
    """Tagged outcome of a keyword column lookup."""

    index: int | None = None
    name: str | None = None

    @classmethod
    def found(cls, index: int, name: str) -> ColumnMatch:
        return cls(index=index, name=name)

    @classmethod
    def not_found(cls) -> ColumnMatch:
        return cls()

    @property
    def is_found(self) -> bool:
        return self.index is not None


@dataclass(frozen=True)
class ColumnRoles:
    """Column positions for time, retention value, and optional rewatch."""

    time_index: int
    value_index: int
    rewatch_index: int | None = None
    positional: bool = False


def parse_numeric_cell(cell: object) -> float | None:
    """Parse one table cell as a float, tolerating a trailing `%`.

    Parsing is locale-free: `12,5` is not a number. Returns None for empty,
    unparseable or non-finite cells.
    """
    if cell is None:
        return None
    if isinstance(cell, (int, float)) and not isinstance(cell, bool):
        number = float(cell)
        return number if math.isfinite(number) else None

    text = str(cell).strip().strip('"').strip("'").strip()
    if text.endswith("%"):
        text = text[:-1].rstrip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def normalize_header(name: object) -> str:
    """Case-fold and trim a header cell."""
    return str(name).strip().strip('"').strip().lower()


def classify_column(columns: Sequence[str], keywords: Sequence[str]) -> ColumnMatch:
    """Return the first column whose normalized name contains any keyword."""
    for index, column in enumerate(columns):
        normalized = normalize_header(column)
        if any(keyword in normalized for keyword in keywords):
            return ColumnMatch.found(index, normalized)
    return ColumnMatch.not_found()


def find_header_row(lines: Sequence[str]) -> int | None:
    """Index of the first line that looks like a retention export header."""
    for index, line in enumerate(lines):
        lowered = line.lower()
        if HEADER_TIME_MARKER in lowered and HEADER_RETENTION_MARKER in lowered:
            return index
    return None


def detect_columns(
    columns: Sequence[str],
    *,
    logger: logging.Logger | None = None,
) -> ColumnRoles:
    """Assign time/value/rewatch roles from header names."""
    log = logger or LOGGER
    if len(columns) < 2:
        raise MalformedRetentionData(
            f"Retention table needs at least two columns, found {len(columns)}."
        )

    time_match = classify_column(columns, TIME_KEYWORDS)
    value_match = classify_column(columns, RETENTION_KEYWORDS)
    rewatch_match = classify_column(columns, REWATCH_KEYWORDS)

    if not time_match.is_found or not value_match.is_found or time_match.index == value_match.index:
        log.warning(
            "Header row lacks distinct time/retention columns; using positional columns 0 and 1.",
            extra={"columns": [normalize_header(c) for c in columns]},
        )
        rewatch_index = rewatch_match.index if rewatch_match.index not in (None, 0, 1) else None
        return ColumnRoles(time_index=0, value_index=1, rewatch_index=rewatch_index, positional=True)

    rewatch_index = rewatch_match.index
    if rewatch_index in (time_match.index, value_match.index):
        rewatch_index = None
    return ColumnRoles(
        time_index=int(time_match.index),
        value_index=int(value_match.index),
        rewatch_index=rewatch_index,
    )


def load_retention_samples(
    raw_text: str,
    duration_hint: float | None = None,
    *,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Parse, coerce, sort and clip a raw retention export.

    Returns a frame with `time` and `value` columns, plus `rewatch` when the
    export carries a repeated-views column. Rows whose time or value cannot be
    parsed are dropped; so are rows past a positive `duration_hint`.
    """
    log = logger or LOGGER
    lines = [line for line in raw_text.strip().splitlines() if line.strip()]
    if not lines:
        return _empty_samples()

    header_idx = find_header_row(lines)
    if header_idx is None:
        table = _read_headerless_table(lines)
        if table.shape[1] < 2:
            raise MalformedRetentionData(
                f"Retention table needs at least two columns, found {table.shape[1]}."
            )
        roles = ColumnRoles(time_index=0, value_index=1, positional=True)
    else:
        if header_idx > 0:
            log.debug("Skipping %d preamble lines before the header row.", header_idx)
        table = _read_headed_table(lines[header_idx:])
        roles = detect_columns([str(c) for c in table.columns], logger=log)

    if roles.positional:
        log.debug("Reading time and retention from columns %d and %d.", roles.time_index, roles.value_index)
    samples = pd.DataFrame(
        {
            "time": table.iloc[:, roles.time_index].map(parse_numeric_cell),
            "value": table.iloc[:, roles.value_index].map(parse_numeric_cell),
        }
    )
    if roles.rewatch_index is not None:
        samples["rewatch"] = table.iloc[:, roles.rewatch_index].map(parse_numeric_cell)

    data_rows = len(samples)
    samples = samples.dropna(subset=list(SAMPLE_COLUMNS))
    samples = samples.astype(float)
    samples = samples[samples["time"] >= 0.0]
    if data_rows > 0 and samples.empty:
        raise MalformedRetentionData(
            f"None of the {data_rows} data rows have numeric time and retention values."
        )

    samples = samples.sort_values("time", kind="mergesort").reset_index(drop=True)
    if duration_hint is not None and duration_hint > 0:
        samples = samples[samples["time"] <= duration_hint].reset_index(drop=True)

    dropped = data_rows - len(samples)
    if dropped:
        log.debug("Dropped %d of %d rows during cleaning.", dropped, data_rows)
    return samples


def _read_headed_table(lines: Sequence[str]) -> pd.DataFrame:
    text = "\n".join(lines)
    try:
        return _read_table(text, sep=None, engine="python")
    except csv.Error as exc:
        delimiter = ";" if ";" in lines[0] and "," not in lines[0] else ","
        LOGGER.debug("Delimiter sniffing failed (%s); falling back to %r.", exc, delimiter)
        return _read_table(text, sep=delimiter)


def _read_table(text: str, **read_kwargs: object) -> pd.DataFrame:
    try:
        return pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            on_bad_lines="skip",
            skipinitialspace=True,
            **read_kwargs,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise MalformedRetentionData(f"Could not read retention table: {exc}") from exc


def _read_headerless_table(lines: Sequence[str]) -> pd.DataFrame:
    try:
        return pd.read_csv(
            io.StringIO("\n".join(lines)),
            header=None,
            sep=r"[,;]",
            engine="python",
            dtype=str,
            keep_default_na=False,
            on_bad_lines="skip",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise MalformedRetentionData(f"Could not read retention table: {exc}") from exc


def _empty_samples() -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series(dtype=float) for column in SAMPLE_COLUMNS})
