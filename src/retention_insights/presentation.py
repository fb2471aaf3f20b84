"""Text and table formatting helpers for retention results."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd

from .results import ProblemPoint, RepeatedSegment, RetentionAnalysis, StrengthPoint

NO_ANALYSIS_TEXT = "No retention analysis was performed."
NOT_FOUND_TEXT = "Not found"


def build_analysis_summary_text(analysis: RetentionAnalysis | None) -> str:
    """Create a compact text block describing an analysis for prompt assembly."""
    if analysis is None:
        return NO_ANALYSIS_TEXT

    hook = analysis.hook_analysis
    lines = [
        f"Total video duration: {round(analysis.total_duration)} seconds.",
        f"Average audience retention: {analysis.average_retention:.1f}%.",
        f"Hook (first 30s): verdict {hook.verdict}, drop {hook.initial_drop:.1f}%.",
        "Key problem points (timestamp, % drop): "
        f"{_format_points(analysis.problem_points, 'retention_dip')}.",
        "Key strength points (timestamp, % rise): "
        f"{_format_points(analysis.strength_points, 'retention_peak')}.",
    ]
    if analysis.repeated_segments:
        lines.append(
            "Most rewatched moments (timestamp, intensity): "
            f"{_format_points(analysis.repeated_segments, 'rewatch_intensity')}."
        )
    return "\n".join(lines)


def event_table(analysis: RetentionAnalysis) -> pd.DataFrame:
    """All detected events in one table, ordered by timestamp."""
    rows: list[dict[str, object]] = []
    for point in analysis.problem_points:
        rows.append({"timestamp_s": point.timestamp, "event": "problem", "magnitude": point.retention_dip})
    for point in analysis.strength_points:
        rows.append({"timestamp_s": point.timestamp, "event": "strength", "magnitude": point.retention_peak})
    for segment in analysis.repeated_segments:
        rows.append(
            {"timestamp_s": segment.timestamp, "event": "rewatch", "magnitude": segment.rewatch_intensity}
        )

    if not rows:
        return pd.DataFrame(columns=["timestamp_s", "event", "magnitude"])
    return pd.DataFrame(rows).sort_values("timestamp_s", kind="mergesort").reset_index(drop=True)


def display_event_table(analysis: RetentionAnalysis) -> pd.DataFrame:
    """Round and rename the event table for reports."""
    table = event_table(analysis).rename(
        columns={"timestamp_s": "Time (s)", "event": "Event", "magnitude": "Magnitude"}
    )
    table["Time (s)"] = table["Time (s)"].astype(float).round(1)
    table["Magnitude"] = table["Magnitude"].astype(float).round(1)
    return table


def write_summary_text(output_path: str | Path, text: str) -> None:
    """Write summary text to disk."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")


def _format_points(
    points: Sequence[ProblemPoint | StrengthPoint | RepeatedSegment],
    metric: str,
) -> str:
    if not points:
        return NOT_FOUND_TEXT
    return ", ".join(
        f"({round(point.timestamp)}s, {float(getattr(point, metric) or 0.0):.1f})" for point in points
    )
