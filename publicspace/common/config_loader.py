"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from publicspace.common.errors import ConfigError
from publicspace.common.schema import validate_pipeline_config, validate_sources_config


@dataclass(frozen=True)
class ConfigBundle:
    sources: list[dict]
    pipeline: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _read_yaml(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = _read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = _read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    sources = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", _overlay("sources.yml")),
        allow_unknown=allow_unknown,
    )
    pipeline = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", _overlay("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(sources=list(sources["sources"]), pipeline=pipeline)


def resolve_sources(bundle: ConfigBundle, target: str) -> list[dict]:
    if target == "all":
        return list(bundle.sources)
    selected = [source for source in bundle.sources if source["id"] == target]
    if not selected:
        raise ConfigError(f"Unknown source id: {target}")
    return selected
