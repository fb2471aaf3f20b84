from __future__ import annotations

import json
import logging

import numpy as np
import pandas as pd
import pytest

import retention_insights.analyzer as analyzer
from retention_insights.analyzer import (
    analyze_hook,
    analyze_retention,
    analyze_samples,
    detect_problem_points,
    detect_repeated_segments,
    detect_strength_points,
    pad_to_duration,
    resample_curve,
)
from retention_insights.errors import AnalysisExecutionError, MalformedRetentionData
from retention_insights.results import ProblemPoint, RepeatedSegment, RetentionAnalysis

LINEAR_DECLINE = "0,100\n10,90\n20,80\n30,70\n40,60"
STEP_RECOVERY = "0,50\n5,20\n10,60"


def _samples(times: list[float], values: list[float], rewatch: list[float] | None = None) -> pd.DataFrame:
    frame = pd.DataFrame({"time": [float(t) for t in times], "value": [float(v) for v in values]})
    if rewatch is not None:
        frame["rewatch"] = [float(r) for r in rewatch]
    return frame


def test_linear_decline_scenario() -> None:
    analysis = analyze_retention(LINEAR_DECLINE, dip_sensitivity=12)

    assert analysis.total_duration == 40.0
    assert analysis.average_retention == pytest.approx(80.0)
    assert analysis.volatility_score == pytest.approx(10.0)
    assert analysis.problem_points == (ProblemPoint(20.0, 20.0), ProblemPoint(40.0, 20.0))
    assert analysis.hook_analysis.verdict == "bad"
    assert analysis.hook_analysis.initial_drop == pytest.approx(30.0)


def test_step_recovery_scenario() -> None:
    analysis = analyze_retention(STEP_RECOVERY, dip_sensitivity=12)

    assert analysis.problem_points == (ProblemPoint(5.0, 30.0),)
    assert analysis.strength_points == ()
    assert analysis.average_retention == pytest.approx(37.5)


def test_dip_scan_resets_high_water_mark_after_each_flag() -> None:
    samples = _samples([0, 10, 20, 30], [100, 85, 80, 72])
    points = detect_problem_points(samples, dip_sensitivity=12)

    assert [p.retention_dip for p in points] == [15.0, 13.0]
    assert [p.timestamp for p in points] == [10.0, 30.0]


def test_dip_scan_raises_high_water_mark_on_recovery() -> None:
    samples = _samples([0, 10, 20, 30], [60, 90, 80, 75])
    points = detect_problem_points(samples, dip_sensitivity=12)

    assert points == (ProblemPoint(30.0, 15.0),)


def test_problem_points_are_capped_and_sorted_by_time() -> None:
    values = [100 if i % 2 == 0 else 80 for i in range(24)]
    samples = _samples(list(range(0, 240, 10)), values)
    points = detect_problem_points(samples, dip_sensitivity=12)

    assert len(points) == 7
    timestamps = [p.timestamp for p in points]
    assert timestamps == sorted(timestamps)


def test_strength_points_use_self_calibrating_threshold() -> None:
    values = [60.0 if (i % 4 == 0 and 0 < i <= 32) else 50.0 for i in range(40)]
    samples = _samples(list(range(40)), values)
    points = detect_strength_points(samples, peak_sensitivity_factor=1.5)

    assert len(points) == 5
    assert all(p.retention_peak == pytest.approx(10.0) for p in points)
    assert all(p.type == "peak" for p in points)
    timestamps = [p.timestamp for p in points]
    assert timestamps == sorted(timestamps)


def test_hook_verdicts() -> None:
    assert analyze_hook(_samples([0, 30, 60], [100, 90, 50])).verdict == "average"
    assert analyze_hook(_samples([0, 30, 60], [100, 95, 50])).verdict == "good"
    assert analyze_hook(_samples([0, 30, 60], [100, 84, 50])).verdict == "bad"

    late_start = analyze_hook(_samples([40, 60], [100, 50]))
    assert late_start.verdict == "good"
    assert late_start.initial_drop == 0.0


def test_duration_hint_dominates_and_pads_flat() -> None:
    analysis = analyze_retention("0,80\n100,70\n300,60", duration_hint=500)

    assert analysis.total_duration == 500.0
    assert analysis.raw_data_points[-1].time == 500.0
    assert analysis.raw_data_points[-1].value == 60.0
    assert len(analysis.raw_data_points) == 4
    assert 0.0 <= analysis.average_retention <= 80.0


def test_pad_to_duration_is_noop_when_data_reaches_the_end() -> None:
    samples = _samples([0, 10], [100, 90])
    assert len(pad_to_duration(samples, 10.0)) == 2
    assert len(pad_to_duration(samples, 12.0)) == 3


def test_duration_hint_discards_late_samples() -> None:
    analysis = analyze_retention("0,100\n50,90\n100,80\n150,70", duration_hint=100)

    assert analysis.total_duration == 100.0
    assert max(p.time for p in analysis.raw_data_points) == 100.0


def test_resampled_curve_has_100_smoothed_points() -> None:
    analysis = analyze_retention(LINEAR_DECLINE)
    curve = analysis.retention_curve

    assert len(curve) == 100
    times = [p.time for p in curve]
    assert times[0] == 0.0
    assert times[-1] == pytest.approx(40.0)
    assert all(b > a for a, b in zip(times, times[1:]))

    step = 40.0 / 99.0
    # edge window shrinks to three points
    assert curve[0].value == pytest.approx(100.0 - step)
    assert curve[50].value == pytest.approx(100.0 - times[50])


def test_resample_curve_empty_without_duration() -> None:
    assert resample_curve(_samples([0, 0], [100, 90]), 0.0) == ()


def test_repeated_segments_grouped_by_row_index_gap() -> None:
    rewatch = [0.0] * 20
    rewatch[3] = 10.0
    rewatch[4] = 12.0
    rewatch[12] = 15.0
    samples = _samples([i * 5 for i in range(20)], [100 - i for i in range(20)], rewatch)

    segments, overlay = detect_repeated_segments(samples)

    assert segments == (RepeatedSegment(20.0, 12.0), RepeatedSegment(60.0, 15.0))
    assert overlay is not None
    assert len(overlay) == 20
    assert overlay[0].value == pytest.approx(100.0)
    assert overlay[12].value == pytest.approx(88.0 + 25.0)


def test_repeated_segments_gap_of_three_rows_stays_one_group() -> None:
    rewatch = [0.0] * 20
    rewatch[3] = 10.0
    rewatch[6] = 12.0
    samples = _samples([i * 5 for i in range(20)], [80.0] * 20, rewatch)

    segments, _ = detect_repeated_segments(samples)

    assert segments == (RepeatedSegment(30.0, 12.0),)


def test_repeated_segments_absent_without_rewatch_signal() -> None:
    assert detect_repeated_segments(_samples([0, 10], [100, 90])) == ((), None)
    assert detect_repeated_segments(_samples([0, 10], [100, 90], [np.nan, np.nan])) == ((), None)


def test_constant_rewatch_series_has_flat_overlay_and_no_hotspots() -> None:
    segments, overlay = detect_repeated_segments(_samples([0, 10, 20], [100, 90, 80], [4, 4, 4]))

    assert segments == ()
    assert [p.value for p in overlay] == [100.0, 90.0, 80.0]


def test_degenerate_input_returns_empty_result() -> None:
    single = analyze_retention("0,100")
    assert single == RetentionAnalysis.empty(0.0)
    assert single.hook_analysis.verdict == "bad"
    assert single.retention_curve == ()
    assert single.problem_points == ()

    assert analyze_retention("") == RetentionAnalysis.empty(0.0)
    assert analyze_retention("0,100", duration_hint=120).total_duration == 120.0


def test_analyzer_is_deterministic() -> None:
    text = "Elapsed video time,Audience retention,Rewatches\n0,100,0\n10,80,4\n20,85,1\n30,60,0"
    first = analyze_retention(text, 90.0, 10.0, 1.0)
    second = analyze_retention(text, 90.0, 10.0, 1.0)

    assert first == second
    assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())


def test_analyze_samples_does_not_mutate_input() -> None:
    samples = _samples([0, 10, 20], [100, 90, 60])
    before = samples.copy()
    analyze_samples(samples, duration_hint=60)
    pd.testing.assert_frame_equal(samples, before)


def test_malformed_input_propagates() -> None:
    with pytest.raises(MalformedRetentionData):
        analyze_retention("a,b\nc,d")


def test_unexpected_failure_is_wrapped(monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise ZeroDivisionError("division by zero")

    monkeypatch.setattr(analyzer, "resample_curve", boom)
    with pytest.raises(AnalysisExecutionError) as excinfo:
        analyze_retention(LINEAR_DECLINE)

    assert isinstance(excinfo.value.cause, ZeroDivisionError)
    assert "division by zero" in str(excinfo.value)


def test_invalid_sensitivity_is_rejected() -> None:
    with pytest.raises(ValueError):
        analyze_retention(LINEAR_DECLINE, dip_sensitivity=0)
    with pytest.raises(ValueError):
        analyze_retention(LINEAR_DECLINE, peak_sensitivity_factor=-1)


def test_injected_logger_receives_progress(caplog) -> None:
    logger = logging.getLogger("tests.retention")
    with caplog.at_level(logging.INFO, logger="tests.retention"):
        analyze_retention(LINEAR_DECLINE, logger=logger)

    assert "Retention analysis complete: 2 problem points" in caplog.text


def test_repeated_segments_keep_five_strongest_groups_in_time_order() -> None:
    rewatch = [0.0] * 40
    for row, intensity in zip(range(2, 40, 5), [16.0, 10.0, 14.0, 11.0, 15.0, 12.0, 13.0]):
        rewatch[row] = intensity
    samples = _samples([i * 5 for i in range(40)], [90.0] * 40, rewatch)

    segments, _ = detect_repeated_segments(samples)

    assert segments == (
        RepeatedSegment(10.0, 16.0),
        RepeatedSegment(60.0, 14.0),
        RepeatedSegment(110.0, 15.0),
        RepeatedSegment(135.0, 12.0),
        RepeatedSegment(160.0, 13.0),
    )
