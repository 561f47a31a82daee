"""GeoJSON, NDJSON and CSV export of stored public spaces.

All three files are written from the same list of features so feature count,
order and rounded coordinates agree across formats.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from publicspace.common.constants import COORDINATE_PRECISION
from publicspace.common.errors import GeometryTypeError
from publicspace.common.fs import open_replacing
from publicspace.common.geometry import centroid, round_coordinates, round_geometry
from publicspace.common.logging import log_event
from publicspace.common.store import DocumentStore

STRINGIFIED_FIELDS = ("details", "amenities", "equipment")


def _parse_geometry(value: Any) -> dict | None:
    geometry = value
    if isinstance(value, str):
        try:
            geometry = json.loads(value)
        except json.JSONDecodeError:
            return None
    if not isinstance(geometry, dict) or not geometry.get("type") or not geometry.get("coordinates"):
        return None
    return geometry


def build_export_features(
    documents: Iterable[tuple[str, dict[str, Any]]],
    precision: int = COORDINATE_PRECISION,
    *,
    run_id: str | None = None,
    logger: logging.Logger | None = None,
) -> list[dict[str, Any]]:
    features: list[dict[str, Any]] = []
    for document_id, data in documents:
        if data.get("archived") is True:
            continue

        geometry = _parse_geometry(data.get("geometry"))
        if geometry is None:
            if logger is not None:
                log_event(
                    logger,
                    f"invalid geometry in document {document_id}",
                    level=logging.WARNING,
                    run_id=run_id,
                    stage="export",
                    event="EXPORT_SKIP",
                    status="warning",
                    space_id=data.get("space_id"),
                    error_code=GeometryTypeError.error_code,
                )
            continue

        properties = {key: value for key, value in data.items() if key != "geometry"}
        for key in STRINGIFIED_FIELDS:
            if properties.get(key) and not isinstance(properties[key], str):
                properties[key] = json.dumps(properties[key], ensure_ascii=False)
        properties["document_id"] = document_id

        features.append(
            {
                "type": "Feature",
                "geometry": round_geometry(geometry, precision),
                "properties": properties,
            }
        )
    return features


def write_geojson(path: Path, features: list[dict[str, Any]]) -> int:
    with open_replacing(path) as f:
        f.write('{"type": "FeatureCollection", "features": [\n')
        for idx, feature in enumerate(features):
            if idx > 0:
                f.write(",\n")
            f.write(json.dumps(feature, ensure_ascii=False))
        f.write("\n]}\n")
    return len(features)


def write_ndjson(path: Path, features: list[dict[str, Any]]) -> int:
    with open_replacing(path) as f:
        for feature in features:
            f.write(json.dumps(feature, ensure_ascii=False) + "\n")
    return len(features)


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _lon_lat(geometry: dict[str, Any], precision: int) -> tuple[float, float]:
    if geometry["type"] == "Point":
        lon, lat = geometry["coordinates"][:2]
        return lon, lat
    lon, lat = round_coordinates(centroid(geometry)["coordinates"], precision)
    return lon, lat


def csv_table(
    features: list[dict[str, Any]],
    precision: int = COORDINATE_PRECISION,
) -> tuple[list[str], list[dict[str, Any]]]:
    """Flatten features into rows; the header is the union of keys in first-seen order."""
    rows: list[dict[str, Any]] = []
    header: dict[str, None] = {}
    for feature in features:
        lon, lat = _lon_lat(feature["geometry"], precision)
        row = {**feature["properties"], "longitude": lon, "latitude": lat}
        rows.append(row)
        header.update(dict.fromkeys(row))
    return list(header), rows


def write_csv(path: Path, features: list[dict[str, Any]], precision: int = COORDINATE_PRECISION) -> int:
    header, rows = csv_table(features, precision)
    with open_replacing(path, newline="") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(header)
        for row in rows:
            writer.writerow([_csv_value(row.get(key)) for key in header])
    return len(rows)


def run_export(
    store: DocumentStore,
    collection: str,
    data_dir: Path,
    basename: str,
    precision: int,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    documents = store.query(collection)
    features = build_export_features(documents, precision, run_id=run_id, logger=logger)

    out_dir = data_dir / "out"
    geojson_path = out_dir / f"{basename}.geojson"
    ndjson_path = out_dir / f"{basename}.ndjson"
    csv_path = out_dir / f"{basename}.csv"
    written = {
        "geojson": write_geojson(geojson_path, features),
        "ndjson": write_ndjson(ndjson_path, features),
        "csv": write_csv(csv_path, features, precision),
    }

    archived = sum(1 for _document_id, data in documents if data.get("archived") is True)
    skipped = len(documents) - archived - len(features)

    return {
        "run_id": run_id,
        "collection": collection,
        "outputs": [str(geojson_path), str(ndjson_path), str(csv_path)],
        "documents": len(documents),
        "archived": archived,
        "skipped": skipped,
        "rows_out": len(features),
        "written": written,
    }
