"""Run the retention analysis and export tables, figure and results contract."""

from __future__ import annotations

import argparse
import logging

from retention_insights.analyzer import analyze_retention
from retention_insights.config import default_project_config, resolve_output_dir, resolve_stats_file
from retention_insights.presentation import build_analysis_summary_text, write_summary_text
from retention_insights.results_contract import write_results_contract, write_results_tables
from retention_insights.visuals import close_figures, plot_retention_curve, save_figure


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the retention graph, event tables, and results.json."
    )
    parser.add_argument(
        "--input",
        default=None,
        help="Path to the retention CSV export (default: auto-resolve from project config).",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for figure and table exports (default: auto-resolve from project config).",
    )
    parser.add_argument("--duration", type=float, default=None, help="Known video duration in seconds.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    config = default_project_config()
    logging.basicConfig(level=config.runtime.log_level, format="%(levelname)s %(name)s: %(message)s")

    input_path = resolve_stats_file(args.input)
    output_dir = resolve_output_dir(args.output_dir)
    fig_dir = output_dir / "figures"
    fig_dir.mkdir(parents=True, exist_ok=True)

    analysis = analyze_retention(
        input_path.read_text(encoding="utf-8-sig"),
        args.duration,
        config.analysis.dip_sensitivity,
        config.analysis.peak_sensitivity_factor,
    )

    figure_paths = {}
    if analysis.retention_curve:
        fig, _ = plot_retention_curve(analysis)
        figure_paths["retention_curve"] = fig_dir / "retention_curve.png"
        save_figure(fig, figure_paths["retention_curve"])
        close_figures([fig])

    summary_text = build_analysis_summary_text(analysis)
    write_summary_text(output_dir / "summary.txt", summary_text)
    table_paths = write_results_tables(analysis, output_dir)
    contract_path = write_results_contract(
        analysis,
        input_path=input_path,
        output_dir=output_dir,
        parameters={
            "duration_hint": args.duration,
            "dip_sensitivity": config.analysis.dip_sensitivity,
            "peak_sensitivity_factor": config.analysis.peak_sensitivity_factor,
        },
        table_paths=table_paths,
        figure_paths=figure_paths,
    )

    print("Export complete")
    print(f"Input data: {input_path}")
    print(f"Results contract: {contract_path}")
    print(summary_text)


if __name__ == "__main__":
    main()
