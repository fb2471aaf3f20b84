"""Retention-curve statistics and event detection."""

from __future__ import annotations

from functools import reduce
import logging
import math
from typing import Callable, TypeVar

import numpy as np
import pandas as pd

from .constants import (
    DEFAULT_DIP_SENSITIVITY,
    DEFAULT_PEAK_SENSITIVITY_FACTOR,
    HOOK_AVERAGE_DROP_PCT,
    HOOK_BAD_DROP_PCT,
    HOOK_WINDOW_S,
    MAX_PROBLEM_POINTS,
    MAX_REPEATED_SEGMENTS,
    MAX_STRENGTH_POINTS,
    RESAMPLE_POINTS,
    REWATCH_GROUP_MAX_INDEX_GAP,
    REWATCH_OVERLAY_SCALE,
    REWATCH_SENSITIVITY_FACTOR,
    SMOOTHING_WINDOW,
)
from .errors import AnalysisExecutionError, RetentionAnalysisError
from .ingest import load_retention_samples
from .results import (
    CurvePoint,
    HookAnalysis,
    ProblemPoint,
    RepeatedSegment,
    RetentionAnalysis,
    StrengthPoint,
)

LOGGER = logging.getLogger(__name__)

EventT = TypeVar("EventT", ProblemPoint, StrengthPoint, RepeatedSegment)


def analyze_retention(
    raw_text: str,
    duration_hint: float | None = None,
    dip_sensitivity: float = DEFAULT_DIP_SENSITIVITY,
    peak_sensitivity_factor: float = DEFAULT_PEAK_SENSITIVITY_FACTOR,
    *,
    logger: logging.Logger | None = None,
) -> RetentionAnalysis:
    """Analyze a raw retention export end to end.

    `MalformedRetentionData` propagates unchanged; any other failure is
    raised as `AnalysisExecutionError`. No partial result is returned.
    """
    log = logger or LOGGER
    _validate_parameters(dip_sensitivity, peak_sensitivity_factor)
    log.info(
        "Starting retention analysis (dip_sensitivity=%.2f, peak_sensitivity_factor=%.2f).",
        dip_sensitivity,
        peak_sensitivity_factor,
    )

    try:
        samples = load_retention_samples(raw_text, duration_hint, logger=log)
        analysis = analyze_samples(
            samples,
            duration_hint,
            dip_sensitivity,
            peak_sensitivity_factor,
            logger=log,
        )
    except RetentionAnalysisError as exc:
        log.error("Retention analysis rejected the input: %s", exc)
        raise
    except Exception as exc:
        log.exception("Retention analysis failed unexpectedly.")
        raise AnalysisExecutionError(f"Retention analysis failed: {exc}", cause=exc) from exc

    log.info(
        "Retention analysis complete: %d problem points, %d strength points, %d rewatch segments.",
        len(analysis.problem_points),
        len(analysis.strength_points),
        len(analysis.repeated_segments),
    )
    return analysis


def analyze_samples(
    samples: pd.DataFrame,
    duration_hint: float | None = None,
    dip_sensitivity: float = DEFAULT_DIP_SENSITIVITY,
    peak_sensitivity_factor: float = DEFAULT_PEAK_SENSITIVITY_FACTOR,
    *,
    logger: logging.Logger | None = None,
) -> RetentionAnalysis:
    """Analyze an already-cleaned `time`/`value`[/`rewatch`] frame."""
    log = logger or LOGGER
    if len(samples) < 2:
        hint = float(duration_hint) if duration_hint is not None and duration_hint > 0 else 0.0
        log.warning("Fewer than two usable samples (%d); returning an empty analysis.", len(samples))
        return RetentionAnalysis.empty(hint)

    total_duration = resolve_total_duration(samples, duration_hint)
    padded = pad_to_duration(samples, total_duration)
    repeated_segments, rewatch_curve = detect_repeated_segments(padded)

    return RetentionAnalysis(
        average_retention=average_retention(padded, total_duration),
        total_duration=total_duration,
        volatility_score=volatility_score(padded),
        hook_analysis=analyze_hook(padded),
        problem_points=detect_problem_points(padded, dip_sensitivity),
        strength_points=detect_strength_points(padded, peak_sensitivity_factor),
        repeated_segments=repeated_segments,
        retention_curve=resample_curve(padded, total_duration),
        raw_data_points=_curve_from_columns(padded["time"], padded["value"]),
        repeated_segments_curve=rewatch_curve,
    )


def resolve_total_duration(samples: pd.DataFrame, duration_hint: float | None = None) -> float:
    """A positive hint wins; otherwise the last observed sample time."""
    if duration_hint is not None and duration_hint > 0:
        return float(duration_hint)
    if samples.empty:
        return 0.0
    return float(samples["time"].iloc[-1])


def pad_to_duration(samples: pd.DataFrame, total_duration: float) -> pd.DataFrame:
    """Hold the last value flat out to `total_duration`."""
    if samples.empty or total_duration <= float(samples["time"].iloc[-1]):
        return samples.reset_index(drop=True)
    last_row = samples.iloc[-1:].copy()
    last_row["time"] = float(total_duration)
    return pd.concat([samples, last_row], ignore_index=True)


def average_retention(samples: pd.DataFrame, total_duration: float) -> float:
    """Trapezoidal time-weighted mean of retention over the timeline."""
    if total_duration <= 0 or samples.empty:
        return 0.0
    area = np.trapezoid(samples["value"].to_numpy(dtype=float), samples["time"].to_numpy(dtype=float))
    return float(area / total_duration)


def volatility_score(samples: pd.DataFrame) -> float:
    """Mean absolute sample-to-sample change in retention."""
    score = samples["value"].diff().abs().mean()
    return float(score) if pd.notna(score) else 0.0


def analyze_hook(samples: pd.DataFrame, hook_window_s: float = HOOK_WINDOW_S) -> HookAnalysis:
    """Classify the opening retention loss as good/average/bad."""
    hook = samples[samples["time"] <= hook_window_s]
    if hook.empty:
        initial_drop = 0.0
    else:
        initial_drop = float(samples["value"].iloc[0] - hook["value"].iloc[-1])

    if initial_drop > HOOK_BAD_DROP_PCT:
        verdict = "bad"
    elif initial_drop > HOOK_AVERAGE_DROP_PCT:
        verdict = "average"
    else:
        verdict = "good"
    return HookAnalysis(verdict=verdict, initial_drop=initial_drop)


def detect_problem_points(
    samples: pd.DataFrame,
    dip_sensitivity: float = DEFAULT_DIP_SENSITIVITY,
    max_points: int = MAX_PROBLEM_POINTS,
) -> tuple[ProblemPoint, ...]:
    """Flag net declines of at least `dip_sensitivity` since the last high-water mark.

    The mark resets to the current value after every flagged dip, so
    overlapping declines are never counted twice.
    """
    if samples.empty:
        return ()

    times = samples["time"].to_numpy(dtype=float)
    values = samples["value"].to_numpy(dtype=float)

    def step(
        state: tuple[float, tuple[ProblemPoint, ...]],
        sample: tuple[float, float],
    ) -> tuple[float, tuple[ProblemPoint, ...]]:
        high_water_mark, points = state
        timestamp, value = sample
        drop = high_water_mark - value
        if drop >= dip_sensitivity:
            return value, (*points, ProblemPoint(float(timestamp), float(drop)))
        return max(high_water_mark, value), points

    _, points = reduce(step, zip(times, values), (float(values[0]), ()))
    return _keep_largest(points, lambda p: p.retention_dip, max_points)


def detect_strength_points(
    samples: pd.DataFrame,
    peak_sensitivity_factor: float = DEFAULT_PEAK_SENSITIVITY_FACTOR,
    max_points: int = MAX_STRENGTH_POINTS,
) -> tuple[StrengthPoint, ...]:
    """Flag rises larger than mean + factor * std of the rise series."""
    delta = samples["value"].diff().fillna(0.0)
    rise_threshold = delta.mean() + delta.std() * peak_sensitivity_factor
    if not math.isfinite(rise_threshold):
        return ()

    candidates = samples.loc[delta > rise_threshold, "time"]
    points = tuple(
        StrengthPoint(timestamp=float(timestamp), retention_peak=float(delta.loc[idx]))
        for idx, timestamp in candidates.items()
    )
    return _keep_largest(points, lambda p: p.retention_peak, max_points)


def detect_repeated_segments(
    samples: pd.DataFrame,
    max_segments: int = MAX_REPEATED_SEGMENTS,
) -> tuple[tuple[RepeatedSegment, ...], tuple[CurvePoint, ...] | None]:
    """Find rewatch hotspots and build the rewatch overlay curve.

    Samples above mean + std of the raw rewatch series are grouped whenever
    their row positions are at most three apart; each group is represented
    by its strongest sample. Returns `((), None)` without a rewatch signal.
    """
    if "rewatch" not in samples.columns or samples["rewatch"].isna().all():
        return (), None

    work = samples.reset_index(drop=True)
    rewatch = work["rewatch"]
    rewatch_min = rewatch.min()
    rewatch_span = rewatch.max() - rewatch_min
    if rewatch_span > 0:
        normalized = (rewatch - rewatch_min) / rewatch_span * REWATCH_OVERLAY_SCALE
    else:
        normalized = pd.Series(0.0, index=work.index)
    overlay = work["value"] + normalized.fillna(0.0)
    overlay_curve = _curve_from_columns(work["time"], overlay)

    threshold = rewatch.mean() + rewatch.std() * REWATCH_SENSITIVITY_FACTOR
    peaks = work[rewatch > threshold]
    if peaks.empty:
        return (), overlay_curve

    group_id = (peaks.index.to_series().diff() > REWATCH_GROUP_MAX_INDEX_GAP).cumsum()
    segments: list[RepeatedSegment] = []
    for _, group in peaks.groupby(group_id, sort=True):
        peak_row = group.loc[group["rewatch"].idxmax()]
        segments.append(
            RepeatedSegment(
                timestamp=float(peak_row["time"]),
                rewatch_intensity=float(peak_row["rewatch"]),
            )
        )

    return _keep_largest(tuple(segments), lambda s: s.rewatch_intensity, max_segments), overlay_curve


def resample_curve(
    samples: pd.DataFrame,
    total_duration: float,
    num_points: int = RESAMPLE_POINTS,
    window: int = SMOOTHING_WINDOW,
) -> tuple[CurvePoint, ...]:
    """Evenly resample by linear interpolation, then centered moving average."""
    if total_duration <= 0 or samples.empty:
        return ()
    grid = np.linspace(0.0, float(total_duration), num_points)
    interpolated = np.interp(
        grid,
        samples["time"].to_numpy(dtype=float),
        samples["value"].to_numpy(dtype=float),
    )
    smoothed = pd.Series(interpolated).rolling(window, min_periods=1, center=True).mean()
    return _curve_from_columns(pd.Series(grid), smoothed)


def _keep_largest(
    points: tuple[EventT, ...],
    key: Callable[[EventT], float],
    limit: int,
) -> tuple[EventT, ...]:
    ranked = sorted(points, key=key, reverse=True)[:limit]
    return tuple(sorted(ranked, key=lambda p: p.timestamp))


def _curve_from_columns(times: pd.Series, values: pd.Series) -> tuple[CurvePoint, ...]:
    return tuple(
        CurvePoint(time=float(t), value=float(v))
        for t, v in zip(times.to_numpy(dtype=float), values.to_numpy(dtype=float), strict=True)
    )


def _validate_parameters(dip_sensitivity: float, peak_sensitivity_factor: float) -> None:
    if not math.isfinite(dip_sensitivity) or dip_sensitivity <= 0:
        raise ValueError("dip_sensitivity must be a finite value > 0")
    if not math.isfinite(peak_sensitivity_factor) or peak_sensitivity_factor < 0:
        raise ValueError("peak_sensitivity_factor must be a finite value >= 0")
