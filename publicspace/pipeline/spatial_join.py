"""Spatial joins: borough consistency checks and nearest-reference enrichment.

Both joins are read-only against reference sets loaded once per run. A point
that falls in no borough, or a search over an empty reference set, is a miss
that resolves to None or the ``Unknown`` sentinel rather than an error.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from publicspace.common.constants import BOROUGH_NAMES, UNKNOWN_NAME
from publicspace.common.errors import StageError
from publicspace.common.fs import iter_lines, write_json
from publicspace.common.geometry import (
    BoroughPolygon,
    ReferenceFeature,
    borough_for_point,
    nearest_feature,
    point_from_geometry,
)
from publicspace.common.models import BoroughMismatch, CanonicalSpace
from publicspace.pipeline.stream import (
    CsvRowSink,
    NdjsonSink,
    RecordIssue,
    SinkSet,
    StreamCounts,
    issue_logger,
    iter_ndjson_events,
    iter_records,
    render_feature,
    run_stream,
)

SCHOOLYARD_DESCRIPTION = (
    "The schoolyard at {name} which is open to the public after school hours "
    "as part of the schoolyards to playgrounds program."
)
MISMATCH_HEADER = ["space_id", "mentioned_borough", "resolved_borough"]


def read_point_record(feature: Any) -> CanonicalSpace:
    record = CanonicalSpace.from_feature(feature)
    point_from_geometry(record.geometry)
    return record


def mentioned_borough(properties: Mapping[str, Any], borough_names: Iterable[str] = BOROUGH_NAMES) -> str | None:
    names = list(borough_names)
    for value in properties.values():
        if not isinstance(value, str):
            continue
        lowered = value.lower()
        for name in names:
            if name.lower() in lowered:
                return name
    return None


def _compare_boroughs(record: CanonicalSpace, mentioned: str | None, resolved: str | None) -> BoroughMismatch | None:
    if mentioned is None or resolved is None or resolved.casefold() == mentioned.casefold():
        return None
    return BoroughMismatch(space_id=record.space_id, mentioned_borough=mentioned, resolved_borough=resolved)


def check_borough(record: CanonicalSpace, boroughs: Sequence[BoroughPolygon]) -> BoroughMismatch | None:
    mentioned = mentioned_borough(record.properties())
    if mentioned is None:
        return None
    resolved = borough_for_point(point_from_geometry(record.geometry), boroughs)
    return _compare_boroughs(record, mentioned, resolved)


def enrich_from_nearest(record: CanonicalSpace, references: Sequence[ReferenceFeature]) -> CanonicalSpace:
    nearest = nearest_feature(point_from_geometry(record.geometry), references)
    name = nearest.name if nearest is not None else None
    if not name:
        return replace(record, name=UNKNOWN_NAME)
    return replace(record, name=name, description=SCHOOLYARD_DESCRIPTION.format(name=name))


def _require_input(input_path: Path) -> None:
    if not input_path.exists():
        raise StageError(f"Missing NDJSON input: {input_path}")


def run_enrich(
    input_path: Path,
    output_path: Path,
    references: Sequence[ReferenceFeature],
    enrich_types: Sequence[str],
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    _require_input(input_path)
    outcomes: Counter[str] = Counter()

    def _transform(feature: Any) -> CanonicalSpace:
        record = read_point_record(feature)
        if record.type not in enrich_types:
            return record
        enriched = enrich_from_nearest(record, references)
        outcomes["unknown" if enriched.name == UNKNOWN_NAME else "enriched"] += 1
        return enriched

    with SinkSet([NdjsonSink(output_path, render_feature)]) as sinks:
        counts = run_stream(
            iter_ndjson_events(iter_lines(input_path)),
            _transform,
            sinks,
            on_issue=issue_logger(logger, run_id, "enrich"),
        )

    return {
        "run_id": run_id,
        "output": str(output_path),
        "counts": counts.to_dict(),
        "rows_out": counts.emitted,
        "skipped": counts.parse_errors,
        "invalid": counts.geometry_errors,
        "enriched": outcomes["enriched"],
        "unknown": outcomes["unknown"],
    }


def run_check_boroughs(
    input_path: Path,
    boroughs: Sequence[BoroughPolygon],
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    _require_input(input_path)
    report_path = data_dir / "out" / "reports" / "mismatched-boroughs.csv"
    on_issue = issue_logger(logger, run_id, "check-boroughs")

    counts = StreamCounts()
    mismatched = 0
    unresolved = 0
    with SinkSet([CsvRowSink(report_path, MISMATCH_HEADER, lambda mismatch: mismatch.to_row())]) as sinks:
        for item in iter_records(iter_ndjson_events(iter_lines(input_path)), read_point_record):
            counts = counts.observe(item)
            if isinstance(item, RecordIssue):
                if on_issue is not None:
                    on_issue(item)
                continue
            resolved = borough_for_point(point_from_geometry(item.geometry), boroughs)
            if resolved is None:
                unresolved += 1
            mismatch = _compare_boroughs(item, mentioned_borough(item.properties()), resolved)
            if mismatch is not None:
                mismatched += 1
                sinks.write(mismatch)

    payload = {
        "run_id": run_id,
        "output": str(report_path),
        "counts": counts.to_dict(),
        "rows_out": counts.emitted,
        "skipped": counts.parse_errors,
        "invalid": counts.geometry_errors,
        "mismatched": mismatched,
        "unresolved": unresolved,
    }
    write_json(data_dir / "out" / "reports" / "borough_check.json", payload)
    return payload
