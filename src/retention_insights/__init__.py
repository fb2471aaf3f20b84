"""Audience-retention curve analysis package."""

from .analyzer import (
    analyze_hook,
    analyze_retention,
    analyze_samples,
    average_retention,
    detect_problem_points,
    detect_repeated_segments,
    detect_strength_points,
    pad_to_duration,
    resample_curve,
    resolve_total_duration,
    volatility_score,
)
from .comparison import RetentionComparison, build_comparison, compare_retention, comparison_table
from .config import (
    ProjectPaths,
    RetentionInsightsConfig,
    clear_project_config_cache,
    default_project_config,
    default_project_paths,
    find_project_root,
    resolve_output_dir,
    resolve_stats_file,
)
from .errors import AnalysisExecutionError, MalformedRetentionData, RetentionAnalysisError
from .ingest import (
    ColumnMatch,
    ColumnRoles,
    classify_column,
    detect_columns,
    find_header_row,
    load_retention_samples,
    parse_numeric_cell,
)
from .presentation import build_analysis_summary_text, event_table
from .results import (
    CurvePoint,
    HookAnalysis,
    ProblemPoint,
    RepeatedSegment,
    RetentionAnalysis,
    StrengthPoint,
)

__all__ = [
    "AnalysisExecutionError",
    "ColumnMatch",
    "ColumnRoles",
    "CurvePoint",
    "HookAnalysis",
    "MalformedRetentionData",
    "ProblemPoint",
    "ProjectPaths",
    "RepeatedSegment",
    "RetentionAnalysis",
    "RetentionAnalysisError",
    "RetentionComparison",
    "RetentionInsightsConfig",
    "StrengthPoint",
    "analyze_hook",
    "analyze_retention",
    "analyze_samples",
    "average_retention",
    "build_analysis_summary_text",
    "build_comparison",
    "classify_column",
    "clear_project_config_cache",
    "compare_retention",
    "comparison_table",
    "default_project_config",
    "default_project_paths",
    "detect_columns",
    "detect_problem_points",
    "detect_repeated_segments",
    "detect_strength_points",
    "event_table",
    "find_header_row",
    "find_project_root",
    "load_retention_samples",
    "pad_to_duration",
    "parse_numeric_cell",
    "resample_curve",
    "resolve_output_dir",
    "resolve_stats_file",
    "resolve_total_duration",
    "volatility_score",
]
