"""Concurrent source download with an all-or-nothing barrier."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable

from publicspace.common.errors import StageError
from publicspace.common.logging import log_event

Fetcher = Callable[[str, Path], Path]

RAW_SOURCE_TEMPLATE = "tmp/{source_id}.geojson"
CENTROID_SOURCE_TEMPLATE = "tmp/{source_id}-centroids.geojson"


def raw_source_path(data_dir: Path, source_id: str) -> Path:
    return data_dir / RAW_SOURCE_TEMPLATE.format(source_id=source_id)


def centroid_source_path(data_dir: Path, source_id: str) -> Path:
    return data_dir / CENTROID_SOURCE_TEMPLATE.format(source_id=source_id)


def normalise_input_path(data_dir: Path, source: dict) -> Path:
    if source["centroid"]:
        return centroid_source_path(data_dir, source["id"])
    return raw_source_path(data_dir, source["id"])


def run_fetch(
    sources: list[dict],
    data_dir: Path,
    run_id: str,
    *,
    fetcher: Fetcher,
    max_workers: int = 5,
    logger: logging.Logger | None = None,
) -> dict:
    """Download every source, waiting for all of them before deciding.

    A single failure fails the stage, but files from downloads that did
    complete are left in place.
    """
    results: dict[str, str] = {}
    failures: dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(fetcher, source["download_url"], raw_source_path(data_dir, source["id"])): source["id"]
            for source in sources
        }
        wait(futures)

    for future, source_id in futures.items():
        exc = future.exception()
        if exc is None:
            results[source_id] = str(future.result())
            continue
        failures[source_id] = f"{type(exc).__name__}: {exc}"
        if logger is not None:
            log_event(
                logger,
                f"fetch failed for source {source_id}",
                level=logging.ERROR,
                run_id=run_id,
                stage="fetch",
                source=source_id,
                event="FETCH_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )

    if failures:
        failed = ", ".join(sorted(failures))
        raise StageError(f"Fetch failed for sources: {failed}")

    return {
        "run_id": run_id,
        "fetched": dict(sorted(results.items())),
        "rows_out": len(results),
    }
