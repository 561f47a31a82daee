"""Line-oriented record streaming with append-only sinks.

Every input line is an independent JSON value, either a Feature or a
FeatureCollection. Records are transformed one at a time and handed to each
sink before the next line is read, so an interrupted run leaves a prefix of
complete output lines behind.
"""

from __future__ import annotations

import contextlib
import csv
import io
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, TextIO, Union

from publicspace.common.errors import (
    GeometryTypeError,
    ParseError,
    RecordError,
    SinkError,
    ValidationError,
)
from publicspace.common.fs import ensure_dir
from publicspace.common.logging import log_event
from publicspace.common.models import CanonicalSpace


@dataclass(frozen=True)
class FeatureLine:
    line_number: int
    index: int
    feature: Any


@dataclass(frozen=True)
class RecordIssue:
    line_number: int
    error_code: str
    message: str
    space_id: str | None = None

    def to_row(self) -> list[str]:
        return [str(self.line_number), self.space_id or "", self.error_code, self.message]


StreamEvent = Union[FeatureLine, RecordIssue]
StreamItem = Union[CanonicalSpace, RecordIssue]
Transform = Callable[[Any], CanonicalSpace]


@dataclass(frozen=True)
class StreamCounts:
    records_in: int = 0
    emitted: int = 0
    parse_errors: int = 0
    geometry_errors: int = 0
    validation_errors: int = 0

    @property
    def rejected(self) -> int:
        return self.parse_errors + self.geometry_errors + self.validation_errors

    def observe(self, item: StreamItem) -> "StreamCounts":
        if isinstance(item, CanonicalSpace):
            return StreamCounts(
                self.records_in + 1,
                self.emitted + 1,
                self.parse_errors,
                self.geometry_errors,
                self.validation_errors,
            )
        code = item.error_code
        return StreamCounts(
            self.records_in + 1,
            self.emitted,
            self.parse_errors + (code == ParseError.error_code),
            self.geometry_errors + (code == GeometryTypeError.error_code),
            self.validation_errors + (code == ValidationError.error_code),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "records_in": self.records_in,
            "emitted": self.emitted,
            "parse_errors": self.parse_errors,
            "geometry_errors": self.geometry_errors,
            "validation_errors": self.validation_errors,
        }


def _expand_value(value: Any, line_number: int) -> Iterator[StreamEvent]:
    if isinstance(value, dict) and value.get("type") == "Feature":
        yield FeatureLine(line_number, 0, value)
    elif isinstance(value, dict) and value.get("type") == "FeatureCollection" and isinstance(value.get("features"), list):
        for index, feature in enumerate(value["features"]):
            yield FeatureLine(line_number, index, feature)
    else:
        kind = value.get("type") if isinstance(value, dict) else type(value).__name__
        yield RecordIssue(line_number, ParseError.error_code, f"Unexpected JSON value of type {kind}")


def iter_ndjson_events(lines: Iterable[Union[str, bytes]]) -> Iterator[StreamEvent]:
    for line_number, line in enumerate(lines, start=1):
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as exc:
                yield RecordIssue(line_number, ParseError.error_code, f"Invalid UTF-8: {exc.reason} at byte {exc.start}")
                continue
        if not line.strip():
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError as exc:
            yield RecordIssue(line_number, ParseError.error_code, f"Invalid JSON: {exc.msg}")
            continue
        yield from _expand_value(value, line_number)


def iter_collection_events(collection: Any) -> Iterator[StreamEvent]:
    yield from _expand_value(collection, 1)


def iter_records(events: Iterable[StreamEvent], transform: Transform) -> Iterator[StreamItem]:
    for event in events:
        if isinstance(event, RecordIssue):
            yield event
            continue
        try:
            yield transform(event.feature)
        except RecordError as exc:
            yield RecordIssue(
                line_number=event.line_number,
                error_code=exc.error_code,
                message=str(exc),
                space_id=getattr(exc, "space_id", None),
            )


class _LineBufferedSink:
    def __init__(self, path: Path, *, append: bool = False) -> None:
        ensure_dir(path.parent)
        self.path = path
        self._handle: TextIO | None = path.open("a" if append else "w", encoding="utf-8", newline="", buffering=1)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.close()

    def _write_text(self, text: str) -> None:
        if self._handle is None:
            raise SinkError(f"Sink already closed: {self.path}")
        self._handle.write(text)
        self._handle.flush()


class NdjsonSink(_LineBufferedSink):
    """Writes one JSON value per line; ``render`` returning None skips the item."""

    def __init__(self, path: Path, render: Callable[[StreamItem], dict | None], *, append: bool = False) -> None:
        super().__init__(path, append=append)
        self.render = render

    def write(self, item: StreamItem) -> None:
        value = self.render(item)
        if value is None:
            return
        self._write_text(json.dumps(value, ensure_ascii=False) + "\n")


class CsvRowSink(_LineBufferedSink):
    def __init__(
        self,
        path: Path,
        header: list[str],
        render: Callable[[StreamItem], list[str] | None],
        *,
        append: bool = False,
    ) -> None:
        write_header = not (append and path.exists() and path.stat().st_size > 0)
        super().__init__(path, append=append)
        self.render = render
        if write_header:
            self._write_row(header)

    def _write_row(self, values: list[str]) -> None:
        buffer = io.StringIO()
        csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n").writerow(values)
        self._write_text(buffer.getvalue())

    def write(self, item: StreamItem) -> None:
        row = self.render(item)
        if row is None:
            return
        self._write_row(row)


class SinkSet:
    """Fans items out to several sinks that fail independently.

    When one sink raises ``OSError`` it is closed, every other sink is
    flushed and closed with the output it already holds, and ``SinkError``
    propagates.
    """

    def __init__(self, sinks: list) -> None:
        self.sinks = list(sinks)

    def write(self, item: StreamItem) -> None:
        for sink in self.sinks:
            try:
                sink.write(item)
            except OSError as exc:
                with contextlib.suppress(OSError):
                    sink.close()
                self.close()
                raise SinkError(f"Output sink failed: {getattr(sink, 'path', sink)}: {exc}") from exc

    def close(self) -> None:
        failed: list[str] = []
        for sink in self.sinks:
            if sink.closed:
                continue
            try:
                sink.flush()
                sink.close()
            except OSError:
                failed.append(str(getattr(sink, "path", sink)))
        if failed:
            raise SinkError(f"Output sinks failed to close: {', '.join(failed)}")

    def __enter__(self) -> "SinkSet":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


def render_feature(item: StreamItem) -> dict | None:
    return item.to_feature() if isinstance(item, CanonicalSpace) else None


def render_issue_row(item: StreamItem) -> list[str] | None:
    return item.to_row() if isinstance(item, RecordIssue) else None


ISSUE_HEADER = ["line_number", "space_id", "error_code", "message"]


def run_stream(
    events: Iterable[StreamEvent],
    transform: Transform,
    sinks: SinkSet,
    on_issue: Callable[[RecordIssue], None] | None = None,
) -> StreamCounts:
    counts = StreamCounts()
    for item in iter_records(events, transform):
        counts = counts.observe(item)
        if isinstance(item, RecordIssue) and on_issue is not None:
            on_issue(item)
        sinks.write(item)
    return counts


def issue_logger(
    logger: logging.Logger | None,
    run_id: str,
    stage: str,
    source: str | None = None,
) -> Callable[[RecordIssue], None] | None:
    if logger is None:
        return None

    def _log(issue: RecordIssue) -> None:
        log_event(
            logger,
            f"skipped record: {issue.message}",
            level=logging.WARNING,
            run_id=run_id,
            stage=stage,
            source=source,
            event="RECORD_SKIP",
            status="warning",
            line_number=issue.line_number,
            space_id=issue.space_id,
            error_code=issue.error_code,
        )

    return _log
