"""Run identifiers and UTC timestamps for logs and reports."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def generate_run_id() -> str:
    # sortable by start time; the suffix separates runs started in the same second
    return f"{_utc_now().strftime('run-%Y%m%dT%H%M%SZ')}-{secrets.token_hex(3)}"


def utc_today_iso() -> str:
    return _utc_now().date().isoformat()


def utc_timestamp_iso() -> str:
    return _utc_now().isoformat(timespec="milliseconds")
