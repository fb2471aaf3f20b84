"""Retention graph rendering."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import seaborn as sns

from .results import CurvePoint, RetentionAnalysis, curve_frame


def plot_retention_curve(
    analysis: RetentionAnalysis,
    *,
    after_curve: Sequence[CurvePoint] | None = None,
    show_raw_points: bool = True,
    show_rewatch_overlay: bool = True,
    annotate_events: bool = True,
) -> tuple[plt.Figure, plt.Axes]:
    """Smoothed retention curve with raw samples, event markers and overlays."""
    if not analysis.retention_curve:
        raise ValueError("analysis has no retention curve to plot.")

    sns.set_theme(style="whitegrid")
    fig, ax = plt.subplots(figsize=(12.0, 5.4), constrained_layout=True)

    curve = curve_frame(analysis.retention_curve)
    ax.plot(curve["time"], curve["value"], color="#1f77b4", linewidth=2.3, label="Retention (smoothed)")

    if show_raw_points and analysis.raw_data_points:
        raw = curve_frame(analysis.raw_data_points)
        ax.scatter(raw["time"], raw["value"], s=9, color="#1f77b4", alpha=0.3, label="Raw samples", zorder=2)

    if show_rewatch_overlay and analysis.repeated_segments_curve:
        overlay = curve_frame(analysis.repeated_segments_curve)
        ax.plot(
            overlay["time"],
            overlay["value"],
            color="#9467bd",
            linewidth=1.2,
            alpha=0.6,
            linestyle="--",
            label="Rewatch overlay",
        )

    if after_curve:
        after = curve_frame(tuple(after_curve))
        ax.plot(after["time"], after["value"], color="#2ca02c", linewidth=2.0, label="After changes")

    ax.axhline(
        analysis.average_retention,
        color="#7f7f7f",
        linestyle=":",
        linewidth=1.2,
        label=f"Average ({analysis.average_retention:.1f}%)",
    )

    curve_values = dict(zip(curve["time"], curve["value"]))
    for idx, point in enumerate(analysis.problem_points):
        ax.axvline(point.timestamp, color="#d62728", alpha=0.35, linewidth=1.0)
        ax.scatter(
            [point.timestamp],
            [_nearest_value(curve_values, point.timestamp)],
            marker="v",
            s=60,
            color="#d62728",
            zorder=3,
            label="Problem point" if idx == 0 else None,
        )
        if annotate_events:
            ax.annotate(
                f"-{point.retention_dip:.1f}",
                (point.timestamp, 0.02),
                xycoords=("data", "axes fraction"),
                color="#d62728",
                fontsize=8,
                ha="center",
            )

    for idx, point in enumerate(analysis.strength_points):
        ax.scatter(
            [point.timestamp],
            [_nearest_value(curve_values, point.timestamp)],
            marker="^",
            s=60,
            color="#2ca02c",
            zorder=3,
            label="Strength point" if idx == 0 else None,
        )
        if annotate_events:
            ax.annotate(
                f"+{point.retention_peak:.1f}",
                (point.timestamp, 0.96),
                xycoords=("data", "axes fraction"),
                color="#2ca02c",
                fontsize=8,
                ha="center",
            )

    for idx, segment in enumerate(analysis.repeated_segments):
        ax.axvline(
            segment.timestamp,
            color="#9467bd",
            alpha=0.5,
            linewidth=1.4,
            linestyle="-.",
            label="Rewatch hotspot" if idx == 0 else None,
        )

    ax.set_xlim(0.0, max(analysis.total_duration, 1e-9))
    ax.set_xlabel("Elapsed video time (s)")
    ax.set_ylabel("Audience retention (%)")
    ax.set_title(f"Audience retention | hook verdict: {analysis.hook_analysis.verdict}")
    ax.legend(loc="upper right", fontsize=8, frameon=True)
    return fig, ax


def save_figure(fig: plt.Figure, output_path: str | Path, dpi: int = 200) -> None:
    """Save a figure with a white background."""
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output, dpi=dpi, bbox_inches="tight", facecolor="white")


def close_figures(figures: Sequence[plt.Figure]) -> None:
    """Close a batch of figures to keep script memory stable."""
    for fig in figures:
        plt.close(fig)


def _nearest_value(curve_values: dict[float, float], timestamp: float) -> float:
    nearest = min(curve_values, key=lambda t: abs(t - timestamp))
    return curve_values[nearest]
