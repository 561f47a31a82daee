"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from publicspace.common.constants import SPACE_TYPES
from publicspace.common.errors import ConfigError
from publicspace.common.slugs import is_strict_slug


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_sources_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "sources config")
    _assert_required_keys(cfg, {"sources"}, "sources config")
    _assert_no_unknown_keys(cfg, {"sources"}, "sources config", allow_unknown)

    sources = cfg["sources"]
    if not isinstance(sources, list) or not sources:
        raise ConfigError("sources must be a non-empty list")

    source_keys = {"id", "type", "name", "download_url", "centroid"}
    ids: list[str] = []
    for idx, source in enumerate(sources):
        ctx = f"sources[{idx}]"
        _assert_mapping(source, ctx)
        _assert_required_keys(source, source_keys, ctx)
        _assert_no_unknown_keys(source, source_keys, ctx, allow_unknown)
        if source["type"] not in SPACE_TYPES:
            raise ConfigError(f"Unknown space type in {ctx}: {source['type']}")
        if not is_strict_slug(str(source["id"])):
            raise ConfigError(f"Source id must be a slug in {ctx}: {source['id']}")
        ids.append(source["id"])

    dupes = {source_id for source_id in ids if ids.count(source_id) > 1}
    if dupes:
        raise ConfigError(f"Duplicate source ids: {', '.join(sorted(dupes))}")

    return cfg


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "pipeline config")
    top_required = {"references", "enrich", "export", "fetch", "store"}
    top_optional = {"validate", "describe"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required | top_optional, "pipeline config", allow_unknown)

    _assert_required_keys(
        cfg["references"],
        {"boroughs_path", "boroughs_name_property", "schools_path", "schools_name_property"},
        "references",
    )
    _assert_required_keys(cfg["enrich"], {"types"}, "enrich")
    unknown_types = set(cfg["enrich"]["types"] or []) - set(SPACE_TYPES)
    if unknown_types:
        raise ConfigError(f"Unknown space types in enrich.types: {', '.join(sorted(unknown_types))}")

    _assert_required_keys(cfg["export"], {"collection", "basename", "precision"}, "export")
    precision = cfg["export"]["precision"]
    if not isinstance(precision, int) or isinstance(precision, bool) or precision < 0:
        raise ConfigError("export.precision must be a non-negative integer")

    _assert_required_keys(cfg["fetch"], {"max_workers", "connect_timeout", "read_timeout"}, "fetch")
    if int(cfg["fetch"]["max_workers"]) < 1:
        raise ConfigError("fetch.max_workers must be at least 1")

    _assert_required_keys(cfg["store"], {"path"}, "store")

    for section, known in (("validate", {"sheet_path"}), ("describe", {"oracle", "output"})):
        if cfg.get(section) is None:
            continue
        _assert_mapping(cfg[section], section)
        _assert_no_unknown_keys(cfg[section], known, section, allow_unknown)

    oracle = (cfg.get("describe") or {}).get("oracle")
    if oracle is not None and (not isinstance(oracle, str) or ":" not in oracle):
        raise ConfigError("describe.oracle must look like \"package.module:factory\"")
    return cfg
