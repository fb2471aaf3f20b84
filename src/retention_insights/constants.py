"""Shared thresholds and limits for retention analysis."""

DEFAULT_DIP_SENSITIVITY = 12.0
DEFAULT_PEAK_SENSITIVITY_FACTOR = 1.5
REWATCH_SENSITIVITY_FACTOR = 1.0

HOOK_WINDOW_S = 30.0
HOOK_BAD_DROP_PCT = 15.0
HOOK_AVERAGE_DROP_PCT = 7.0
DEGENERATE_INITIAL_DROP_PCT = 100.0

MAX_PROBLEM_POINTS = 7
MAX_STRENGTH_POINTS = 5
MAX_REPEATED_SEGMENTS = 5

REWATCH_GROUP_MAX_INDEX_GAP = 3
REWATCH_OVERLAY_SCALE = 25.0

RESAMPLE_POINTS = 100
SMOOTHING_WINDOW = 5

HEADER_TIME_MARKER = "elapsed video time"
HEADER_RETENTION_MARKER = "retention"
TIME_KEYWORDS = ("time",)
RETENTION_KEYWORDS = ("retention",)
REWATCH_KEYWORDS = ("repeated", "rewatch")
