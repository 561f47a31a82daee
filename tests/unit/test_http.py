from __future__ import annotations

import pytest
import requests

from publicspace.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, chunks=None):
        self.status_code = status_code
        self._chunks = chunks or []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        self.close()

    def close(self):
        self.closed = True

    def iter_content(self, chunk_size: int):
        yield from self._chunks


def test_http_download_writes_file(monkeypatch, tmp_path):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, [b'{"type": ', b"", b'"FeatureCollection"}']))
    target = tmp_path / "tmp" / "pops.geojson"

    path = client.download("https://example.com", target)

    assert path == target
    assert target.read_bytes() == b'{"type": "FeatureCollection"}'
    assert not (tmp_path / "tmp" / ".pops.geojson.part").exists()


def test_http_retryable_status_raises_retryable_error(monkeypatch, tmp_path):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503))

    with pytest.raises(RetryableHttpError):
        client.download("https://example.com", tmp_path / "x.geojson")
    assert not (tmp_path / "x.geojson").exists()


def test_http_client_error_is_not_retried(monkeypatch, tmp_path):
    calls = []

    def _request(**_kwargs):
        calls.append(1)
        return FakeResponse(404)

    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    monkeypatch.setattr(client.session, "request", _request)

    with pytest.raises(HttpRequestError) as excinfo:
        client.download("https://example.com", tmp_path / "x.geojson")
    assert not isinstance(excinfo.value, RetryableHttpError)
    assert len(calls) == 1


def test_http_connection_errors_are_retried(monkeypatch, tmp_path):
    responses = iter([requests.ConnectionError("reset"), FakeResponse(200, [b"{}"])])

    def _request(**_kwargs):
        item = next(responses)
        if isinstance(item, Exception):
            raise item
        return item

    client = HttpClient(retry=RetryConfig(max_attempts=2, multiplier=0, max_wait=0))
    monkeypatch.setattr(client.session, "request", _request)

    assert client.download("https://example.com", tmp_path / "x.geojson").read_bytes() == b"{}"


def test_http_response_is_closed_after_retryable_status(monkeypatch, tmp_path):
    responses = []

    def _request(**_kwargs):
        responses.append(FakeResponse(429))
        return responses[-1]

    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    monkeypatch.setattr(client.session, "request", _request)

    with pytest.raises(RetryableHttpError):
        client.download("https://example.com", tmp_path / "x.geojson")
    assert len(responses) == 3
    assert all(response.closed for response in responses)


def test_http_response_is_closed_after_successful_download(monkeypatch, tmp_path):
    response = FakeResponse(200, [b"{}"])
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: response)

    client.download("https://example.com", tmp_path / "x.geojson")

    assert response.closed
