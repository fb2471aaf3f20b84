"""CLI entrypoints for retention analysis."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Sequence

from .analyzer import analyze_retention
from .comparison import compare_retention
from .config import default_project_config, resolve_output_dir, resolve_stats_file
from .errors import RetentionAnalysisError
from .presentation import build_analysis_summary_text
from .results_contract import write_results_contract, write_results_tables

LOGGER = logging.getLogger("retention_insights")


def build_parser() -> argparse.ArgumentParser:
    config = default_project_config()
    parser = argparse.ArgumentParser(description="Analyze audience-retention exports.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze one retention export.")
    analyze.add_argument(
        "--input",
        default=None,
        help="Path to the retention CSV export (default: auto-resolve from project config).",
    )
    analyze.add_argument(
        "--output-dir",
        default=None,
        help="Write tables and results.json here (default: print only).",
    )
    analyze.add_argument(
        "--summary",
        action="store_true",
        help="Print the plain-text summary instead of JSON.",
    )
    _add_analysis_arguments(analyze, config.analysis.dip_sensitivity, config.analysis.peak_sensitivity_factor)

    compare = subparsers.add_parser("compare", help="Compare a new export against the original one.")
    compare.add_argument("--before", required=True, help="Path to the original retention export.")
    compare.add_argument("--after", required=True, help="Path to the new retention export.")
    _add_analysis_arguments(compare, config.analysis.dip_sensitivity, config.analysis.peak_sensitivity_factor)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    config = default_project_config()
    logging.basicConfig(
        level=config.runtime.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "analyze":
            _run_analyze(args)
        else:
            _run_compare(args)
    except (RetentionAnalysisError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def _run_analyze(args: argparse.Namespace) -> None:
    input_path = resolve_stats_file(args.input)
    analysis = analyze_retention(
        _read_text(input_path),
        args.duration,
        args.dip_sensitivity,
        args.peak_factor,
        logger=LOGGER,
    )

    if args.output_dir is not None:
        output_dir = resolve_output_dir(args.output_dir)
        table_paths = write_results_tables(analysis, output_dir)
        contract_path = write_results_contract(
            analysis,
            input_path=input_path,
            output_dir=output_dir,
            parameters=_parameters(args),
            table_paths=table_paths,
        )
        LOGGER.info("Wrote results contract to %s", contract_path)

    if args.summary:
        print(build_analysis_summary_text(analysis))
    else:
        payload = analysis.to_dict()
        payload["inputPath"] = str(input_path)
        print(json.dumps(payload, indent=2))


def _run_compare(args: argparse.Namespace) -> None:
    before_path = resolve_stats_file(args.before)
    after_path = resolve_stats_file(args.after)
    before = analyze_retention(
        _read_text(before_path),
        args.duration,
        args.dip_sensitivity,
        args.peak_factor,
        logger=LOGGER,
    )
    comparison = compare_retention(
        before,
        _read_text(after_path),
        dip_sensitivity=args.dip_sensitivity,
        peak_sensitivity_factor=args.peak_factor,
        logger=LOGGER,
    )
    print(json.dumps(comparison.to_dict(), indent=2))


def _add_analysis_arguments(
    parser: argparse.ArgumentParser,
    dip_sensitivity: float,
    peak_sensitivity_factor: float,
) -> None:
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Known video duration in seconds; samples beyond it are discarded.",
    )
    parser.add_argument(
        "--dip-sensitivity",
        type=float,
        default=dip_sensitivity,
        help=f"Retention drop (points) that flags a problem point (default: {dip_sensitivity}).",
    )
    parser.add_argument(
        "--peak-factor",
        type=float,
        default=peak_sensitivity_factor,
        help=f"Std-dev multiplier for strength points (default: {peak_sensitivity_factor}).",
    )


def _parameters(args: argparse.Namespace) -> dict[str, float | None]:
    return {
        "duration_hint": args.duration,
        "dip_sensitivity": args.dip_sensitivity,
        "peak_sensitivity_factor": args.peak_factor,
    }


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8-sig")


if __name__ == "__main__":
    raise SystemExit(main())
