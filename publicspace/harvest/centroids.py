"""Reduce polygon source datasets to centroid point datasets."""

from __future__ import annotations

import logging
from pathlib import Path

from publicspace.common.errors import GeometryTypeError, StageError
from publicspace.common.fs import read_json, write_json
from publicspace.common.geometry import centroid
from publicspace.common.logging import log_event
from publicspace.harvest.fetch import centroid_source_path, raw_source_path


def reduce_to_centroids(collection: dict) -> tuple[dict, int]:
    features: list[dict] = []
    skipped = 0
    for feature in collection.get("features") or []:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not geometry:
            skipped += 1
            continue
        try:
            representative = centroid(geometry)
        except GeometryTypeError:
            skipped += 1
            continue
        features.append(
            {
                "type": "Feature",
                "geometry": representative,
                "properties": dict(feature.get("properties") or {}),
            }
        )
    return {"type": "FeatureCollection", "features": features}, skipped


def run_centroids(
    sources: list[dict],
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    written: dict[str, int] = {}
    skipped_total = 0

    for source in sources:
        if not source["centroid"]:
            continue
        input_path = raw_source_path(data_dir, source["id"])
        if not input_path.exists():
            raise StageError(f"Missing source file for centroid reduction: {input_path}")
        reduced, skipped = reduce_to_centroids(read_json(input_path))
        write_json(centroid_source_path(data_dir, source["id"]), reduced)
        written[source["id"]] = len(reduced["features"])
        skipped_total += skipped
        if skipped and logger is not None:
            log_event(
                logger,
                f"skipped {skipped} features without usable geometry",
                level=logging.WARNING,
                run_id=run_id,
                stage="centroids",
                source=source["id"],
                event="CENTROID_SKIP",
                status="warning",
                error_code=GeometryTypeError.error_code,
            )

    return {"run_id": run_id, "written": written, "skipped": skipped_total}
