"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from publicspace.common.fs import write_json
from publicspace.common.run_meta import utc_today_iso

TOTAL_KEYS = ("skipped", "invalid", "mismatched", "validation_errors")


def summarise_results(stage_results: dict[str, dict], failed_stages: list[str]) -> dict:
    totals = {key: 0 for key in TOTAL_KEYS}
    for result in stage_results.values():
        for key in TOTAL_KEYS:
            totals[key] += int(result.get(key, 0) or 0)

    status = "success"
    if failed_stages:
        status = "error"
    elif any(totals.values()):
        status = "partial"
    return {"status": status, "totals": totals}


def write_run_summary(
    data_dir: Path,
    run_id: str,
    command: str,
    stage_results: dict[str, dict],
    failed_stages: list[str],
) -> Path:
    summary = summarise_results(stage_results, failed_stages)
    payload = {
        "run_id": run_id,
        "run_date": utc_today_iso(),
        "command": command,
        "status": summary["status"],
        "totals": summary["totals"],
        "failed_stages": failed_stages,
        "stages": {
            stage: {key: value for key, value in result.items() if key != "run_id"}
            for stage, result in stage_results.items()
        },
    }
    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path
