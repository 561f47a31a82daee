"""Application constants."""

USER_AGENT = "nyc-public-space/1.0 (+open-data pipeline; contact: configured-email)"
SPACE_TYPES = ("park", "pops", "misc", "stp", "plaza", "wpaa")
BOROUGH_NAMES = ("Manhattan", "Brooklyn", "Queens", "Bronx", "Staten Island")
COORDINATE_PRECISION = 6
UNKNOWN_NAME = "Unknown"
STAGES = (
    "fetch",
    "centroids",
    "combine",
    "enrich",
    "check-boroughs",
    "validate",
    "load",
    "export",
)
COMMANDS = (*STAGES, "check-slugs", "describe")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
EXIT_VALIDATION_FAILED = 30
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "line_number",
    "space_id",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
