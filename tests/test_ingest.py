from __future__ import annotations

import csv
import math

import pytest

from retention_insights.errors import MalformedRetentionData
from retention_insights.ingest import (
    ColumnMatch,
    classify_column,
    detect_columns,
    find_header_row,
    load_retention_samples,
    parse_numeric_cell,
)


def test_parse_numeric_cell_strips_percent_and_whitespace() -> None:
    assert parse_numeric_cell("45.5%") == 45.5
    assert parse_numeric_cell(" 12 ") == 12.0
    assert parse_numeric_cell('"80%"') == 80.0
    assert parse_numeric_cell("100 %") == 100.0
    assert parse_numeric_cell(3) == 3.0


def test_parse_numeric_cell_rejects_unparseable_values() -> None:
    assert parse_numeric_cell("") is None
    assert parse_numeric_cell("abc") is None
    assert parse_numeric_cell("12,5") is None
    assert parse_numeric_cell("%") is None
    assert parse_numeric_cell(None) is None
    assert parse_numeric_cell(float("nan")) is None
    assert parse_numeric_cell("inf") is None


def test_classify_column_returns_first_keyword_match() -> None:
    columns = ["Elapsed video time (s)", "Audience retention (%)", "Repeated views"]

    match = classify_column(columns, ("retention",))
    assert match == ColumnMatch.found(1, "audience retention (%)")
    assert match.is_found

    rewatch = classify_column(columns, ("repeated", "rewatch"))
    assert rewatch.index == 2

    missing = classify_column(columns, ("likes",))
    assert missing == ColumnMatch.not_found()
    assert not missing.is_found


def test_find_header_row_skips_preamble() -> None:
    lines = ["Video: demo", "Elapsed Video Time (s),Audience Retention (%)", "0,100"]
    assert find_header_row(lines) == 1
    assert find_header_row(["time,value", "0,100"]) is None


def test_detect_columns_falls_back_to_positions_when_roles_are_ambiguous() -> None:
    roles = detect_columns(["Elapsed video time and retention", "Value", "Rewatches"])
    assert roles.positional
    assert (roles.time_index, roles.value_index) == (0, 1)
    assert roles.rewatch_index == 2


def test_detect_columns_requires_two_columns() -> None:
    with pytest.raises(MalformedRetentionData):
        detect_columns(["Elapsed video time retention"])


def test_load_samples_with_preamble_header_and_rewatch_column() -> None:
    text = "\n".join(
        [
            "Exported from analytics",
            "",
            "Elapsed video time (s),Audience retention (%),Repeated views (%)",
            "10,90%,2",
            "0,100%,0",
            "20,80%,5",
        ]
    )
    samples = load_retention_samples(text)

    assert list(samples.columns) == ["time", "value", "rewatch"]
    assert samples["time"].tolist() == [0.0, 10.0, 20.0]
    assert samples["value"].tolist() == [100.0, 90.0, 80.0]
    assert samples["rewatch"].tolist() == [0.0, 2.0, 5.0]


def test_load_samples_semicolon_header_and_quoted_cells() -> None:
    text = '"Elapsed video time";"Audience retention"\n"0";"100%"\n"10";"95%"'
    samples = load_retention_samples(text)

    assert samples["time"].tolist() == [0.0, 10.0]
    assert samples["value"].tolist() == [100.0, 95.0]
    assert "rewatch" not in samples.columns


def test_load_samples_headerless_mixed_delimiters_sorted() -> None:
    samples = load_retention_samples("0;100\n10,90\n5;95")
    assert samples["time"].tolist() == [0.0, 5.0, 10.0]
    assert samples["value"].tolist() == [100.0, 95.0, 90.0]


def test_load_samples_drops_rows_that_fail_coercion() -> None:
    samples = load_retention_samples("time,value\n0,100\nfoo,bar\n10,\n20,80")
    assert samples["time"].tolist() == [0.0, 20.0]


def test_load_samples_keeps_rows_with_missing_rewatch() -> None:
    text = "Elapsed video time,Audience retention,Rewatches\n0,100,\n10,90,3"
    samples = load_retention_samples(text)

    assert len(samples) == 2
    assert math.isnan(samples["rewatch"].iloc[0])
    assert samples["rewatch"].iloc[1] == 3.0


def test_load_samples_clips_rows_beyond_duration_hint() -> None:
    samples = load_retention_samples("0,100\n10,90\n20,80", duration_hint=15)
    assert samples["time"].tolist() == [0.0, 10.0]

    unclipped = load_retention_samples("0,100\n10,90\n20,80", duration_hint=0)
    assert len(unclipped) == 3


def test_load_samples_empty_text_returns_empty_frame() -> None:
    samples = load_retention_samples("   \n")
    assert samples.empty
    assert list(samples.columns) == ["time", "value"]


def test_load_samples_all_rows_unparseable_is_malformed() -> None:
    with pytest.raises(MalformedRetentionData):
        load_retention_samples("a,b\nc,d")


def test_load_samples_single_column_is_malformed() -> None:
    with pytest.raises(MalformedRetentionData):
        load_retention_samples("0\n10\n20")


def test_load_samples_tab_separated_export_with_header() -> None:
    text = "\n".join(
        [
            "Elapsed video time (s)\tAudience retention (%)\tRepeated views (%)",
            "0\t100%\t0",
            "10\t90%\t4",
            "20\t80%\t1",
        ]
    )
    samples = load_retention_samples(text)

    assert list(samples.columns) == ["time", "value", "rewatch"]
    assert samples["time"].tolist() == [0.0, 10.0, 20.0]
    assert samples["value"].tolist() == [100.0, 90.0, 80.0]
    assert samples["rewatch"].tolist() == [0.0, 4.0, 1.0]


def test_load_samples_falls_back_to_header_delimiter_when_sniffing_fails(monkeypatch) -> None:
    def cannot_sniff(self, sample, delimiters=None):
        raise csv.Error("Could not determine delimiter")

    monkeypatch.setattr(csv.Sniffer, "sniff", cannot_sniff)

    semicolons = load_retention_samples("Elapsed video time;Audience retention\n0;100\n10;95")
    assert semicolons["value"].tolist() == [100.0, 95.0]

    commas = load_retention_samples("Elapsed video time,Audience retention\n0,100\n10,95")
    assert commas["time"].tolist() == [0.0, 10.0]
