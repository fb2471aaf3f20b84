"""Result types produced by the retention analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from pathlib import Path
from typing import Any, Literal

import numpy as np
import pandas as pd

from .constants import DEGENERATE_INITIAL_DROP_PCT

HookVerdict = Literal["good", "average", "bad"]


@dataclass(frozen=True)
class CurvePoint:
    """One (time, value) pair of a plotted curve."""

    time: float
    value: float


@dataclass(frozen=True)
class ProblemPoint:
    """Net retention loss since the last high-water mark."""

    timestamp: float
    retention_dip: float


@dataclass(frozen=True)
class StrengthPoint:
    """Sample whose rise exceeds the video's own rise threshold."""

    timestamp: float
    retention_peak: float
    type: str = "peak"


@dataclass(frozen=True)
class RepeatedSegment:
    """Representative sample of a rewatch hotspot."""

    timestamp: float
    rewatch_intensity: float


@dataclass(frozen=True)
class HookAnalysis:
    """Retention loss across the opening window."""

    verdict: HookVerdict
    initial_drop: float


@dataclass(frozen=True)
class RetentionAnalysis:
    """Complete output of one analyzer run."""

    average_retention: float
    total_duration: float
    volatility_score: float
    hook_analysis: HookAnalysis
    problem_points: tuple[ProblemPoint, ...] = ()
    strength_points: tuple[StrengthPoint, ...] = ()
    repeated_segments: tuple[RepeatedSegment, ...] = ()
    retention_curve: tuple[CurvePoint, ...] = ()
    raw_data_points: tuple[CurvePoint, ...] = ()
    repeated_segments_curve: tuple[CurvePoint, ...] | None = field(default=None)

    @classmethod
    def empty(cls, total_duration: float = 0.0) -> RetentionAnalysis:
        """Result used when fewer than two usable samples remain."""
        return cls(
            average_retention=0.0,
            total_duration=float(total_duration),
            volatility_score=0.0,
            hook_analysis=HookAnalysis(verdict="bad", initial_drop=DEGENERATE_INITIAL_DROP_PCT),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase contract consumed by the application."""
        payload: dict[str, Any] = {
            "averageRetention": self.average_retention,
            "totalDuration": self.total_duration,
            "volatilityScore": self.volatility_score,
            "hookAnalysis": {
                "verdict": self.hook_analysis.verdict,
                "initialDrop": self.hook_analysis.initial_drop,
            },
            "problemPoints": [
                {"timestamp": p.timestamp, "retentionDip": p.retention_dip} for p in self.problem_points
            ],
            "strengthPoints": [
                {"timestamp": p.timestamp, "retentionPeak": p.retention_peak, "type": p.type}
                for p in self.strength_points
            ],
            "repeatedSegments": [
                {"timestamp": s.timestamp, "rewatchIntensity": s.rewatch_intensity}
                for s in self.repeated_segments
            ],
            "retentionCurve": _curve_records(self.retention_curve),
            "rawDataPoints": _curve_records(self.raw_data_points),
            "repeatedSegmentsCurve": (
                None if self.repeated_segments_curve is None else _curve_records(self.repeated_segments_curve)
            ),
        }
        return jsonify_obj(payload)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RetentionAnalysis:
        """Rebuild a result from its `to_dict` contract."""
        hook = payload.get("hookAnalysis") or {}
        rewatch_curve = payload.get("repeatedSegmentsCurve")
        return cls(
            average_retention=_as_float(payload.get("averageRetention")),
            total_duration=_as_float(payload.get("totalDuration")),
            volatility_score=_as_float(payload.get("volatilityScore")),
            hook_analysis=HookAnalysis(
                verdict=hook.get("verdict", "bad"),
                initial_drop=_as_float(hook.get("initialDrop")),
            ),
            problem_points=tuple(
                ProblemPoint(_as_float(p["timestamp"]), _as_float(p["retentionDip"]))
                for p in payload.get("problemPoints", [])
            ),
            strength_points=tuple(
                StrengthPoint(_as_float(p["timestamp"]), _as_float(p["retentionPeak"]), p.get("type", "peak"))
                for p in payload.get("strengthPoints", [])
            ),
            repeated_segments=tuple(
                RepeatedSegment(_as_float(s["timestamp"]), _as_float(s["rewatchIntensity"]))
                for s in payload.get("repeatedSegments", [])
            ),
            retention_curve=_curve_points(payload.get("retentionCurve", [])),
            raw_data_points=_curve_points(payload.get("rawDataPoints", [])),
            repeated_segments_curve=None if rewatch_curve is None else _curve_points(rewatch_curve),
        )


def curve_frame(points: tuple[CurvePoint, ...] | None) -> pd.DataFrame:
    """Curve points as a `time`/`value` DataFrame."""
    if not points:
        return pd.DataFrame(columns=["time", "value"], dtype=float)
    return pd.DataFrame({"time": [p.time for p in points], "value": [p.value for p in points]})


def jsonify_obj(value: Any) -> Any:
    """Convert numpy/pandas scalars and NaN to plain JSON-safe values."""
    if isinstance(value, dict):
        return {str(k): jsonify_obj(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonify_obj(item) for item in value]
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _curve_records(points: tuple[CurvePoint, ...]) -> list[dict[str, float]]:
    return [{"time": p.time, "value": p.value} for p in points]


def _curve_points(records: list[dict[str, Any]]) -> tuple[CurvePoint, ...]:
    return tuple(CurvePoint(_as_float(r["time"]), _as_float(r["value"])) for r in records)


def _as_float(value: Any) -> float:
    if value is None:
        return float("nan")
    return float(value)
