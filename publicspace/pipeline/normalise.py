"""Normalise heterogeneous source features into canonical spaces."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Mapping

from publicspace.common.errors import ParseError, StageError
from publicspace.common.fs import read_json, write_json
from publicspace.common.geometry import point_from_geometry
from publicspace.common.models import CanonicalSpace
from publicspace.common.slugs import slugify
from publicspace.harvest.fetch import normalise_input_path
from publicspace.pipeline.stream import (
    NdjsonSink,
    SinkSet,
    iter_collection_events,
    issue_logger,
    render_feature,
    run_stream,
)

Derivation = Callable[[Mapping[str, Any]], "str | None"]


def _title_case(value: str) -> str:
    return " ".join(word.capitalize() for word in value.split(" "))


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _join(*parts: Any) -> str | None:
    return _text(" ".join(str(part) for part in parts if _text(part)))


def _none(_props: Mapping[str, Any]) -> None:
    return None


@dataclass(frozen=True)
class SourceExtractor:
    name: Derivation
    location: Derivation
    url: Derivation


def _park_location(props: Mapping[str, Any]) -> str | None:
    address = _text(props.get("address"))
    return _title_case(address) if address else None


def _plaza_location(props: Mapping[str, Any]) -> str | None:
    on_street = _text(props.get("onstreet"))
    from_street = _text(props.get("fromstreet"))
    to_street = _text(props.get("tostreet"))
    if not on_street:
        return None
    if from_street and to_street:
        return f"{on_street} between {from_street} & {to_street}"
    return on_street


def _pops_address(props: Mapping[str, Any]) -> str | None:
    address = _join(props.get("add_number"), props.get("streetname"))
    return _title_case(address) if address else None


def _pops_name(props: Mapping[str, Any]) -> str | None:
    return _text(props.get("bldg_name")) or _pops_address(props)


def _pops_location(props: Mapping[str, Any]) -> str | None:
    return _pops_address(props) if _text(props.get("bldg_name")) else None


def _pops_url(props: Mapping[str, Any]) -> str | None:
    number = _text(props.get("popsnumber"))
    return f"https://apops.mas.org/pops/{number}" if number else None


def _wpaa_url(props: Mapping[str, Any]) -> str | None:
    wpaa_id = _text(props.get("WPAA_ID"))
    return f"https://waterfrontaccess.planning.nyc.gov/profiles/{wpaa_id}" if wpaa_id else None


def _stp_name(props: Mapping[str, Any]) -> str:
    address = _text(props.get("address"))
    return _title_case(address) if address else "Schoolyard Playground"


def _key(name: str) -> Derivation:
    return lambda props: _text(props.get(name))


EXTRACTORS: dict[str, SourceExtractor] = {
    "park": SourceExtractor(name=_key("signname"), location=_park_location, url=_key("url")),
    "plaza": SourceExtractor(name=_key("plazaname"), location=_plaza_location, url=_none),
    "pops": SourceExtractor(name=_pops_name, location=_pops_location, url=_pops_url),
    "wpaa": SourceExtractor(name=_key("WPAA_Name"), location=_key("Intersect_"), url=_wpaa_url),
    "stp": SourceExtractor(name=_stp_name, location=_key("location"), url=_none),
    "misc": SourceExtractor(name=_key("name"), location=_key("location"), url=_key("url")),
}


def normalise_feature(feature: Any, space_type: str) -> CanonicalSpace:
    """Map one raw source feature onto the canonical schema.

    The result has no ``space_id`` or ``description`` yet. Polygon sources
    must already be reduced to centroids; any other geometry type raises
    ``GeometryTypeError``.
    """
    if not isinstance(feature, dict) or feature.get("type") != "Feature":
        raise ParseError("Expected a GeoJSON Feature")
    extractor = EXTRACTORS[space_type]
    geometry = feature.get("geometry")
    point_from_geometry(geometry)
    props = feature.get("properties") or {}
    if not isinstance(props, dict):
        raise ParseError("Feature properties must be an object")
    return CanonicalSpace(
        type=space_type,
        geometry=geometry,
        name=extractor.name(props),
        location=extractor.location(props),
        url=extractor.url(props),
    )


@dataclass
class IdentifierRegistry:
    """Assigns unique strict slugs and remembers every collision it resolved."""

    taken: set[str] = field(default_factory=set)
    collisions: list[dict[str, str]] = field(default_factory=list)

    def assign(self, record: CanonicalSpace) -> CanonicalSpace:
        base = slugify(f"{record.type} {record.name or ''}") or record.type
        candidate = base
        suffix = 2
        while candidate in self.taken:
            candidate = f"{base}-{suffix}"
            suffix += 1
        if candidate != base:
            self.collisions.append({"base": base, "assigned": candidate})
        self.taken.add(candidate)
        return replace(record, space_id=candidate)


def combined_path(data_dir: Path) -> Path:
    return data_dir / "ld" / "combined.ndjson"


def run_combine(
    sources: list[dict],
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    inputs = [(source, normalise_input_path(data_dir, source)) for source in sources]
    missing = [str(path) for _source, path in inputs if not path.exists()]
    if missing:
        raise StageError(f"Missing normalisation inputs: {', '.join(missing)}")

    registry = IdentifierRegistry()
    per_source: dict[str, dict] = {}
    out_path = combined_path(data_dir)

    with SinkSet([NdjsonSink(out_path, render_feature)]) as sinks:
        for source, path in inputs:
            space_type = source["type"]

            def _transform(feature: Any, space_type: str = space_type) -> CanonicalSpace:
                return registry.assign(normalise_feature(feature, space_type))

            try:
                collection = read_json(path)
            except ValueError as exc:
                raise StageError(f"Source file is not valid JSON: {path}") from exc

            counts = run_stream(
                iter_collection_events(collection),
                _transform,
                sinks,
                on_issue=issue_logger(logger, run_id, "combine", source["id"]),
            )
            per_source[source["id"]] = counts.to_dict()

    payload = {
        "run_id": run_id,
        "output": str(out_path),
        "sources": per_source,
        "rows_out": sum(item["emitted"] for item in per_source.values()),
        "skipped": sum(item["parse_errors"] for item in per_source.values()),
        "invalid": sum(item["geometry_errors"] + item["validation_errors"] for item in per_source.values()),
        "id_collisions": registry.collisions,
    }
    write_json(data_dir / "out" / "reports" / "combine_report.json", payload)
    return payload
