"""Optional description review through an external text-improvement oracle.

No oracle ships with the package. The ``describe`` command builds one from the
``describe.oracle`` setting, a ``"package.module:factory"`` path whose factory
takes no arguments.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Protocol

from publicspace.common.errors import ConfigError, StageError
from publicspace.common.fs import iter_lines
from publicspace.common.logging import log_event
from publicspace.common.models import CanonicalSpace
from publicspace.pipeline.stream import (
    CsvRowSink,
    RecordIssue,
    SinkSet,
    StreamCounts,
    issue_logger,
    iter_ndjson_events,
    iter_records,
)

NO_CHANGES = "nochanges"
DESCRIPTION_HEADER = ["space_id", "description"]


class DescriptionOracle(Protocol):
    def describe(self, feature: dict[str, Any]) -> str: ...


def load_oracle(factory_path: str) -> DescriptionOracle:
    module_name, _, attribute = factory_path.partition(":")
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise ConfigError(f"Cannot load description oracle {factory_path!r}: {exc}") from exc
    oracle = factory()
    if not callable(getattr(oracle, "describe", None)):
        raise ConfigError(f"Description oracle {factory_path!r} has no describe() method")
    return oracle


def improve_description(
    oracle: DescriptionOracle,
    record: CanonicalSpace,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> str | None:
    """Return an improved description, or None when nothing should change.

    Errors and malformed answers from the oracle count as "no change".
    """
    try:
        response = oracle.describe(record.to_feature())
    except Exception as exc:
        if logger is not None:
            log_event(
                logger,
                f"description oracle failed: {exc}",
                level=logging.WARNING,
                run_id=run_id,
                stage="describe",
                event="ORACLE_ERROR",
                status="warning",
                space_id=record.space_id,
                error_code="ORACLE_ERROR",
            )
        return None
    if not isinstance(response, str):
        return None
    text = response.strip()
    if not text or text.lower() == NO_CHANGES or text == record.description:
        return None
    return text


def run_describe(
    input_path: Path,
    output_path: Path,
    oracle: DescriptionOracle,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    if not input_path.exists():
        raise StageError(f"Missing NDJSON input: {input_path}")

    on_issue = issue_logger(logger, run_id, "describe")
    counts = StreamCounts()
    improved = 0
    with SinkSet([CsvRowSink(output_path, DESCRIPTION_HEADER, lambda row: row)]) as sinks:
        for item in iter_records(iter_ndjson_events(iter_lines(input_path)), CanonicalSpace.from_feature):
            counts = counts.observe(item)
            if isinstance(item, RecordIssue):
                if on_issue is not None:
                    on_issue(item)
                continue
            description = improve_description(oracle, item, logger=logger, run_id=run_id)
            if description is None:
                continue
            improved += 1
            sinks.write([item.space_id or "", description])

    return {
        "run_id": run_id,
        "output": str(output_path),
        "counts": counts.to_dict(),
        "rows_out": improved,
        "skipped": counts.parse_errors,
        "improved": improved,
        "unchanged": counts.emitted - improved,
    }
