"""Results-contract export: CSV tables plus a `results.json` manifest."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from .presentation import build_analysis_summary_text, display_event_table, event_table
from .results import RetentionAnalysis, curve_frame, jsonify_obj


def write_results_tables(
    analysis: RetentionAnalysis,
    output_dir: str | Path,
) -> dict[str, Path]:
    """Write curve and event tables under `<output_dir>/tables`."""
    table_dir = Path(output_dir) / "tables"
    table_dir.mkdir(parents=True, exist_ok=True)

    table_map: dict[str, tuple[pd.DataFrame, Path]] = {
        "retention_curve": (curve_frame(analysis.retention_curve), table_dir / "retention_curve.csv"),
        "raw_data_points": (curve_frame(analysis.raw_data_points), table_dir / "raw_data_points.csv"),
        "events": (event_table(analysis), table_dir / "events.csv"),
        "events_report": (display_event_table(analysis), table_dir / "events_report.csv"),
    }
    if analysis.repeated_segments_curve is not None:
        table_map["repeated_segments_curve"] = (
            curve_frame(analysis.repeated_segments_curve),
            table_dir / "repeated_segments_curve.csv",
        )

    paths: dict[str, Path] = {}
    for key, (frame, path) in table_map.items():
        frame.to_csv(path, index=False)
        paths[key] = path
    return paths


def write_results_contract(
    analysis: RetentionAnalysis,
    *,
    input_path: str | Path | None,
    output_dir: str | Path,
    parameters: dict[str, Any] | None = None,
    table_paths: dict[str, Path] | None = None,
    figure_paths: dict[str, Path] | None = None,
) -> Path:
    """Write `results.json` with the analysis, parameters and artifact manifest."""
    root = Path(output_dir)
    root.mkdir(parents=True, exist_ok=True)
    contract_path = root / "results.json"

    contract: dict[str, Any] = {
        "generated_at_utc": pd.Timestamp.now(tz="UTC").isoformat(),
        "input_path": None if input_path is None else str(Path(input_path)),
        "output_dir": str(root),
        "parameters": parameters or {},
        "summary_text": build_analysis_summary_text(analysis),
        "analysis": analysis.to_dict(),
        "artifacts": {
            "tables": {key: _relative_to(path, root) for key, path in (table_paths or {}).items()},
            "figures": {key: _relative_to(path, root) for key, path in (figure_paths or {}).items()},
        },
    }

    contract_path.write_text(json.dumps(jsonify_obj(contract), indent=2) + "\n", encoding="utf-8")
    return contract_path


def load_results_contract(output_dir: str | Path) -> dict[str, Any]:
    """Load `results.json` from an output directory."""
    contract_path = Path(output_dir) / "results.json"
    if not contract_path.exists():
        raise FileNotFoundError(
            f"Missing results contract at {contract_path}. Run render_retention_report.py first."
        )
    return json.loads(contract_path.read_text(encoding="utf-8"))


def load_contract_analysis(output_dir: str | Path) -> RetentionAnalysis:
    """Rebuild the analysis stored in a results contract."""
    return RetentionAnalysis.from_dict(load_results_contract(output_dir)["analysis"])


def _relative_to(path: Path, root: Path) -> str:
    return str(path.relative_to(root)) if path.is_relative_to(root) else str(path)
