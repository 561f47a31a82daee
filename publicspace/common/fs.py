"""Filesystem helpers."""

from __future__ import annotations

import contextlib
import json
import os
from pathlib import Path
from typing import Iterator, TextIO


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


@contextlib.contextmanager
def open_replacing(path: Path, *, newline: str | None = None) -> Iterator[TextIO]:
    """Write to a hidden sibling file and move it over ``path`` on success.

    Readers never see a half-written file; on error the sibling is removed
    and any previous ``path`` is left untouched.
    """
    ensure_dir(path.parent)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8", newline=newline) as f:
            yield f
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    os.replace(tmp_path, path)


def write_json(path: Path, payload) -> None:
    with open_replacing(path) as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def read_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def iter_lines(path: Path) -> Iterator[bytes]:
    """Yield raw lines without their endings; decoding is left to the caller."""
    with path.open("rb") as f:
        for line in f:
            yield line.rstrip(b"\r\n")
