"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt the run."""

    error_code = "STAGE_ERROR"


class SinkError(StageError):
    """Raised when an output sink can no longer be written."""

    error_code = "SINK_IO_ERROR"


class RecordError(PipelineError):
    """Per-record failure; the record is skipped and the batch continues."""

    error_code = "RECORD_ERROR"


class ParseError(RecordError):
    error_code = "PARSE_ERROR"


class GeometryTypeError(RecordError):
    error_code = "GEOMETRY_TYPE_ERROR"


class ValidationError(RecordError):
    error_code = "VALIDATION_ERROR"

    def __init__(self, problems: list[str], space_id: str | None = None) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems
        self.space_id = space_id
