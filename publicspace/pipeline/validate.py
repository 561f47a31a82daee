"""Validation stage: record acceptance checks and identifier reports."""

from __future__ import annotations

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, Iterator

from publicspace.common.constants import SPACE_TYPES
from publicspace.common.errors import StageError, ValidationError
from publicspace.common.fs import iter_lines, write_json
from publicspace.common.logging import log_event
from publicspace.common.models import CanonicalSpace
from publicspace.common.slugs import find_collisions, is_strict_slug, suggest_slug_fixes
from publicspace.common.store import DocumentStore
from publicspace.pipeline.stream import (
    ISSUE_HEADER,
    CsvRowSink,
    FeatureLine,
    NdjsonSink,
    SinkSet,
    StreamEvent,
    issue_logger,
    iter_ndjson_events,
    render_feature,
    render_issue_row,
    run_stream,
)

SLUG_ISSUE_HEADER = ["document_id", "current_space_id", "suggested_space_id"]


def _is_non_empty(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_valid_point(geometry: Any) -> bool:
    if not isinstance(geometry, dict) or geometry.get("type") != "Point":
        return False
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or len(coordinates) != 2:
        return False
    return all(
        isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
        for value in coordinates
    )


def validation_problems(record: CanonicalSpace) -> list[str]:
    problems: list[str] = []
    if not is_strict_slug(record.space_id):
        problems.append(f"Invalid space_id: {record.space_id}")
    if record.type not in SPACE_TYPES:
        problems.append(f"Invalid type: {record.type}")
    if not _is_non_empty(record.name):
        problems.append("Name should not be empty")
    if not _is_non_empty(record.description):
        problems.append("Description should not be empty")
    if not _is_valid_point(record.geometry):
        problems.append("Invalid GeoJSON Point geometry")
    return problems


def validate_space(record: CanonicalSpace) -> CanonicalSpace:
    problems = validation_problems(record)
    if problems:
        raise ValidationError(problems, space_id=record.space_id)
    return record


def iter_sheet_events(path: Path) -> Iterator[StreamEvent]:
    """Turn a curated CSV sheet into feature events.

    The ``geometry`` column holds a GeoJSON geometry as a JSON string; an
    unreadable value becomes a missing geometry and fails validation.
    """
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        for row_number, row in enumerate(reader, start=2):
            geometry = None
            raw_geometry = row.get("geometry") or ""
            if raw_geometry:
                try:
                    geometry = json.loads(raw_geometry)
                except json.JSONDecodeError:
                    geometry = None
            properties = {
                key: value
                for key, value in row.items()
                if key and key != "geometry" and value not in (None, "")
            }
            yield FeatureLine(row_number, 0, {"type": "Feature", "geometry": geometry, "properties": properties})


def _input_events(input_path: Path) -> Iterator[StreamEvent]:
    if input_path.suffix.lower() == ".csv":
        return iter_sheet_events(input_path)
    return iter_ndjson_events(iter_lines(input_path))


def run_validate(
    input_path: Path,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    if not input_path.exists():
        raise StageError(f"Missing validation input: {input_path}")

    output_path = data_dir / "ld" / "validated.ndjson"
    errors_path = data_dir / "out" / "reports" / "validation-errors.csv"
    accepted_ids: set[str] = set()
    duplicate_ids: list[str] = []

    def _transform(feature: Any) -> CanonicalSpace:
        record = validate_space(CanonicalSpace.from_feature(feature))
        if record.space_id in accepted_ids:
            duplicate_ids.append(record.space_id)
            raise ValidationError([f"Duplicate space_id: {record.space_id}"], space_id=record.space_id)
        accepted_ids.add(record.space_id)
        return record

    with SinkSet(
        [
            NdjsonSink(output_path, render_feature),
            CsvRowSink(errors_path, ISSUE_HEADER, render_issue_row),
        ]
    ) as sinks:
        counts = run_stream(
            _input_events(input_path),
            _transform,
            sinks,
            on_issue=issue_logger(logger, run_id, "validate"),
        )

    payload = {
        "run_id": run_id,
        "input": str(input_path),
        "output": str(output_path),
        "counts": counts.to_dict(),
        "rows_out": counts.emitted,
        "skipped": counts.parse_errors,
        "validation_errors": counts.geometry_errors + counts.validation_errors,
        "duplicate_space_ids": sorted(set(duplicate_ids)),
    }
    write_json(data_dir / "out" / "reports" / "validation_report.json", payload)
    return payload


def run_check_slugs(
    store: DocumentStore,
    collection: str,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    documents = store.query(collection)
    issues = suggest_slug_fixes(documents)
    collisions = find_collisions(
        fields["space_id"] for _document_id, fields in documents if isinstance(fields.get("space_id"), str)
    )

    report_path = data_dir / "out" / "reports" / "invalid-slugs.csv"
    with SinkSet(
        [CsvRowSink(report_path, SLUG_ISSUE_HEADER, lambda issue: [issue.document_id, issue.current or "", issue.suggested])]
    ) as sinks:
        for issue in issues:
            sinks.write(issue)
            if logger is not None:
                log_event(
                    logger,
                    f"invalid slug {issue.current!r}, suggested {issue.suggested!r}",
                    level=logging.WARNING,
                    run_id=run_id,
                    stage="check-slugs",
                    event="INVALID_SLUG",
                    status="warning",
                    space_id=issue.current,
                    error_code=ValidationError.error_code,
                )

    payload = {
        "run_id": run_id,
        "output": str(report_path),
        "documents": len(documents),
        "rows_out": len(documents) - len(issues),
        "invalid_slugs": len(issues),
        "validation_errors": len(issues) + len(collisions),
        "collisions": collisions,
    }
    write_json(data_dir / "out" / "reports" / "slug_report.json", payload)
    return payload
