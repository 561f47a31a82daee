"""CLI entrypoint for the NYC public space data pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from publicspace.common.config_loader import ConfigBundle, load_all_configs, resolve_sources
from publicspace.common.constants import (
    COMMANDS,
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILED,
    STAGES,
)
from publicspace.common.errors import ConfigError, PipelineError
from publicspace.common.geometry import load_boroughs, load_reference_features
from publicspace.common.http import HttpClient, TimeoutConfig
from publicspace.common.run_meta import generate_run_id
from publicspace.common.logging import build_logger, close_logger, log_event
from publicspace.common.store import JsonFileDocumentStore
from publicspace.harvest.centroids import run_centroids
from publicspace.harvest.fetch import run_fetch
from publicspace.pipeline.describe import load_oracle, run_describe
from publicspace.pipeline.export import run_export
from publicspace.pipeline.load import run_load
from publicspace.pipeline.normalise import combined_path, run_combine
from publicspace.pipeline.reports import summarise_results, write_run_summary
from publicspace.pipeline.spatial_join import run_check_boroughs, run_enrich
from publicspace.pipeline.validate import run_check_slugs, run_validate

VALIDATION_COMMANDS = ("validate", "check-slugs")
ALL_EPILOG = (
    "\"all\" runs fetch, centroids, combine, enrich, check-boroughs, validate, load and export. "
    "Validation requires a description, which enrichment only fills in for the types in "
    "enrich.types, so without a curated sheet (validate.sheet_path) a fresh run loads and "
    "exports those types only. \"describe\" and \"check-slugs\" run on their own."
)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, epilog=ALL_EPILOG)
    parser.add_argument("command", choices=[*COMMANDS, "all"])
    parser.add_argument("--source", default="all")
    parser.add_argument("--input", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    parser.add_argument("--skip-fetch", action="store_true")
    return parser.parse_args(argv)


def enriched_path(data_dir: Path) -> Path:
    return data_dir / "ld" / "enriched.ndjson"


def validated_path(data_dir: Path) -> Path:
    return data_dir / "ld" / "validated.ndjson"


def validate_input_path(data_dir: Path, pipeline: dict) -> Path:
    sheet_path = (pipeline.get("validate") or {}).get("sheet_path")
    if sheet_path:
        return data_dir / sheet_path
    return enriched_path(data_dir)


def resolve_stages(args: argparse.Namespace) -> tuple[str, ...]:
    if args.command != "all":
        return (args.command,)
    if args.skip_fetch:
        return tuple(stage for stage in STAGES if stage != "fetch")
    return STAGES


def execute_stage(
    stage: str,
    bundle: ConfigBundle,
    sources: list[dict],
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
    input_override: Path | None = None,
) -> dict:
    pipeline = bundle.pipeline
    references = pipeline["references"]
    store_path = data_dir / pipeline["store"]["path"]
    collection = pipeline["export"]["collection"]

    if stage == "fetch":
        fetch_cfg = pipeline["fetch"]
        timeout = TimeoutConfig(connect=float(fetch_cfg["connect_timeout"]), read=float(fetch_cfg["read_timeout"]))
        with HttpClient(timeout=timeout) as client:
            return run_fetch(
                sources,
                data_dir,
                run_id,
                fetcher=client.download,
                max_workers=int(fetch_cfg["max_workers"]),
                logger=logger,
            )
    if stage == "centroids":
        return run_centroids(sources, data_dir, run_id, logger)
    if stage == "combine":
        return run_combine(sources, data_dir, run_id, logger)
    if stage == "enrich":
        schools = load_reference_features(data_dir / references["schools_path"], references["schools_name_property"])
        return run_enrich(
            input_override or combined_path(data_dir),
            enriched_path(data_dir),
            schools,
            pipeline["enrich"]["types"] or [],
            run_id,
            logger,
        )
    if stage == "check-boroughs":
        boroughs = load_boroughs(data_dir / references["boroughs_path"], references["boroughs_name_property"])
        return run_check_boroughs(input_override or enriched_path(data_dir), boroughs, data_dir, run_id, logger)
    if stage == "validate":
        return run_validate(input_override or validate_input_path(data_dir, pipeline), data_dir, run_id, logger)
    if stage == "load":
        # the store file is written once, when the stage ends
        store = JsonFileDocumentStore(store_path, autoflush=False)
        return run_load(input_override or validated_path(data_dir), store, collection, run_id, logger)
    if stage == "export":
        export_cfg = pipeline["export"]
        return run_export(
            JsonFileDocumentStore(store_path),
            collection,
            data_dir,
            export_cfg["basename"],
            int(export_cfg["precision"]),
            run_id,
            logger,
        )
    if stage == "check-slugs":
        return run_check_slugs(JsonFileDocumentStore(store_path), collection, data_dir, run_id, logger)
    if stage == "describe":
        describe_cfg = pipeline.get("describe") or {}
        if not describe_cfg.get("oracle"):
            raise ConfigError("describe.oracle is not configured")
        output = describe_cfg.get("output") or "out/reports/descriptions.csv"
        return run_describe(
            input_override or validated_path(data_dir),
            data_dir / output,
            load_oracle(describe_cfg["oracle"]),
            run_id,
            logger,
        )
    raise ValueError(f"Unknown stage: {stage}")


def _exit_code(args: argparse.Namespace, results: dict[str, dict], failed: list[str]) -> int:
    if failed:
        return EXIT_HARD_FAIL
    if args.command in VALIDATION_COMMANDS and results.get(args.command, {}).get("validation_errors", 0) > 0:
        return EXIT_VALIDATION_FAILED
    if args.strict and summarise_results(results, failed)["status"] != "success":
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    input_override = Path(args.input) if args.input else None

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        try:
            bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
            sources = resolve_sources(bundle, args.source)
        except PipelineError as exc:
            log_event(
                logger,
                f"configuration failed: {exc}",
                level=logging.ERROR,
                run_id=run_id,
                event="CONFIG_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            return EXIT_HARD_FAIL

        results: dict[str, dict] = {}
        failed: list[str] = []

        for stage in resolve_stages(args):
            log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
            try:
                results[stage] = execute_stage(stage, bundle, sources, data_dir, run_id, logger, input_override)
            except PipelineError as exc:
                failed.append(stage)
                log_event(
                    logger,
                    f"stage failed: {exc}",
                    level=logging.ERROR,
                    run_id=run_id,
                    stage=stage,
                    event="STAGE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                break
            except Exception:
                failed.append(stage)
                logger.exception(
                    "unexpected stage failure",
                    extra={
                        "run_id": run_id,
                        "stage": stage,
                        "event": "STAGE_FAIL",
                        "status": "error",
                        "error_code": "UNEXPECTED_ERROR",
                    },
                )
                break
            log_event(
                logger,
                "stage end",
                run_id=run_id,
                stage=stage,
                event="STAGE_END",
                status="ok",
                rows_out=results[stage].get("rows_out"),
            )

        write_run_summary(data_dir, run_id=run_id, command=args.command, stage_results=results, failed_stages=failed)
        return _exit_code(args, results, failed)
    finally:
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
