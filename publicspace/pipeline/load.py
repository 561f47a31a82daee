"""Upsert validated canonical records into the document store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from publicspace.common.errors import StageError
from publicspace.common.fs import iter_lines
from publicspace.common.models import CanonicalSpace
from publicspace.common.store import DocumentStore
from publicspace.pipeline.stream import (
    RecordIssue,
    StreamCounts,
    issue_logger,
    iter_ndjson_events,
    iter_records,
)
from publicspace.pipeline.validate import validate_space


def record_to_document(record: CanonicalSpace) -> dict[str, Any]:
    fields = record.properties()
    # stored documents keep geometry as a JSON string
    fields["geometry"] = json.dumps(record.geometry)
    return fields


def _load_record(feature: Any) -> CanonicalSpace:
    return validate_space(CanonicalSpace.from_feature(feature))


def run_load(
    input_path: Path,
    store: DocumentStore,
    collection: str,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    if not input_path.exists():
        raise StageError(f"Missing NDJSON input: {input_path}")

    on_issue = issue_logger(logger, run_id, "load")
    counts = StreamCounts()
    for item in iter_records(iter_ndjson_events(iter_lines(input_path)), _load_record):
        counts = counts.observe(item)
        if isinstance(item, RecordIssue):
            if on_issue is not None:
                on_issue(item)
            continue
        store.set(collection, item.space_id, record_to_document(item), merge=True)

    flush = getattr(store, "flush", None)
    if flush is not None:
        flush()

    return {
        "run_id": run_id,
        "collection": collection,
        "counts": counts.to_dict(),
        "rows_out": counts.emitted,
        "skipped": counts.parse_errors,
        "invalid": counts.geometry_errors + counts.validation_errors,
    }
