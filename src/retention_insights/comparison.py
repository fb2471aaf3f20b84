"""Before/after comparison of two retention exports for the same video."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import pandas as pd

from .analyzer import analyze_retention
from .constants import DEFAULT_DIP_SENSITIVITY, DEFAULT_PEAK_SENSITIVITY_FACTOR
from .results import CurvePoint, RetentionAnalysis

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionComparison:
    """Original analysis, re-analysis of the new export, and their deltas."""

    before: RetentionAnalysis
    after: RetentionAnalysis
    average_retention_delta: float
    initial_drop_delta: float
    volatility_delta: float
    problem_point_delta: int
    strength_point_delta: int

    @property
    def after_curve(self) -> tuple[CurvePoint, ...]:
        return self.after.retention_curve

    @property
    def improved(self) -> bool:
        return self.average_retention_delta > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "averageRetentionDelta": self.average_retention_delta,
            "initialDropDelta": self.initial_drop_delta,
            "volatilityDelta": self.volatility_delta,
            "problemPointDelta": self.problem_point_delta,
            "strengthPointDelta": self.strength_point_delta,
            "improved": self.improved,
            "before": self.before.to_dict(),
            "after": self.after.to_dict(),
        }


def compare_retention(
    before: RetentionAnalysis,
    after_text: str,
    *,
    dip_sensitivity: float = DEFAULT_DIP_SENSITIVITY,
    peak_sensitivity_factor: float = DEFAULT_PEAK_SENSITIVITY_FACTOR,
    logger: logging.Logger | None = None,
) -> RetentionComparison:
    """Analyze a new export on the original timeline and compare it to `before`."""
    log = logger or LOGGER
    duration_hint = before.total_duration if before.total_duration > 0 else None
    after = analyze_retention(
        after_text,
        duration_hint,
        dip_sensitivity,
        peak_sensitivity_factor,
        logger=log,
    )
    comparison = build_comparison(before, after)
    log.info(
        "Before/after comparison: average retention %+.1f pts, hook drop %+.1f pts.",
        comparison.average_retention_delta,
        comparison.initial_drop_delta,
    )
    return comparison


def build_comparison(before: RetentionAnalysis, after: RetentionAnalysis) -> RetentionComparison:
    """Compute deltas (after minus before) between two analyses."""
    return RetentionComparison(
        before=before,
        after=after,
        average_retention_delta=after.average_retention - before.average_retention,
        initial_drop_delta=after.hook_analysis.initial_drop - before.hook_analysis.initial_drop,
        volatility_delta=after.volatility_score - before.volatility_score,
        problem_point_delta=len(after.problem_points) - len(before.problem_points),
        strength_point_delta=len(after.strength_points) - len(before.strength_points),
    )


def comparison_table(comparison: RetentionComparison) -> pd.DataFrame:
    """Side-by-side before/after table of headline metrics."""
    before = comparison.before
    after = comparison.after
    rows = [
        ("Average retention (%)", before.average_retention, after.average_retention),
        ("Hook initial drop (%)", before.hook_analysis.initial_drop, after.hook_analysis.initial_drop),
        ("Volatility", before.volatility_score, after.volatility_score),
        ("Problem points", float(len(before.problem_points)), float(len(after.problem_points))),
        ("Strength points", float(len(before.strength_points)), float(len(after.strength_points))),
    ]
    table = pd.DataFrame(rows, columns=["metric", "before", "after"])
    table["delta"] = table["after"] - table["before"]
    return table
