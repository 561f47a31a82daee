"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from publicspace.common.errors import ParseError

CANONICAL_FIELDS = ("space_id", "type", "name", "location", "url", "description")


@dataclass(frozen=True)
class CanonicalSpace:
    type: str
    geometry: dict[str, Any]
    name: str | None = None
    location: str | None = None
    url: str | None = None
    description: str | None = None
    space_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def properties(self) -> dict[str, Any]:
        props: dict[str, Any] = {}
        for key in CANONICAL_FIELDS:
            value = getattr(self, key)
            if value is not None:
                props[key] = value
        for key, value in self.extra.items():
            props.setdefault(key, value)
        return props

    def to_feature(self) -> dict[str, Any]:
        return {"type": "Feature", "geometry": self.geometry, "properties": self.properties()}

    @classmethod
    def from_feature(cls, feature: dict[str, Any]) -> "CanonicalSpace":
        if not isinstance(feature, dict) or feature.get("type") != "Feature":
            raise ParseError("Expected a GeoJSON Feature")
        props = feature.get("properties") or {}
        if not isinstance(props, dict):
            raise ParseError("Feature properties must be an object")
        geometry = feature.get("geometry")
        extra = {key: value for key, value in props.items() if key not in CANONICAL_FIELDS}
        return cls(
            type=props.get("type"),
            geometry=geometry,
            name=props.get("name"),
            location=props.get("location"),
            url=props.get("url"),
            description=props.get("description"),
            space_id=props.get("space_id"),
            extra=extra,
        )


@dataclass(frozen=True)
class BoroughMismatch:
    space_id: str | None
    mentioned_borough: str
    resolved_borough: str

    def to_row(self) -> list[str]:
        return [self.space_id or "", self.mentioned_borough, self.resolved_borough]
