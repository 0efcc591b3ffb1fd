"""Tests for per-request record files."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from loadburst._internal.errors import DecodeError, PersistenceError
from loadburst.metrics.models import CapturedResponse, RequestOutcome
from loadburst.metrics.persister import ResultPersister, build_record, output_filename

if TYPE_CHECKING:
    from pathlib import Path


def _response(body: bytes = b'{"ok": true}', charset: str | None = None) -> CapturedResponse:
    return CapturedResponse(
        version="HTTP/1.1",
        status=200,
        reason="OK",
        headers={"Content-Type": "application/json"},
        body=body,
        charset=charset,
    )


class TestOutputFilename:
    def test_pads_to_width_of_total(self):
        assert output_filename(2, 100, success=True) == "success-003.json"

    def test_appends_label(self):
        assert output_filename(2, 100, success=True, label="request") == "success-003-request.json"

    def test_failure_prefix(self):
        assert output_filename(0, 3, success=False) == "failure-1.json"

    def test_last_index_fills_width(self):
        assert output_filename(99, 100, success=True) == "success-100.json"

    def test_label_from_directory_file(self):
        assert output_filename(0, 3, success=True, label="test1") == "success-1-test1.json"


class TestBuildRecord:
    def test_success_record(self):
        outcome = RequestOutcome(index=0, latency_ms=12.5, response=_response())
        record = build_record(outcome)
        assert record == {
            "version": "HTTP/1.1",
            "status": 200,
            "headers": {"Content-Type": "application/json"},
            "body": '{"ok": true}',
            "duration_ms": 12.5,
        }

    def test_failure_record(self):
        outcome = RequestOutcome(index=0, latency_ms=3.0, error="HTTP status 500 for url x")
        assert build_record(outcome) == {"error": "HTTP status 500 for url x"}

    def test_uses_announced_charset(self):
        body = "café".encode("latin-1")
        outcome = RequestOutcome(index=0, latency_ms=1.0, response=_response(body, "latin-1"))
        assert build_record(outcome)["body"] == "café"

    def test_invalid_utf8_body(self):
        outcome = RequestOutcome(index=0, latency_ms=1.0, response=_response(b"\xff\xfe"))
        with pytest.raises(DecodeError):
            build_record(outcome)


class TestResultPersister:
    def test_prepare_creates_nested_directory(self, tmp_path: Path):
        output = tmp_path / "a" / "b"
        ResultPersister(output, 10).prepare()
        assert output.is_dir()

    def test_prepare_fails_on_file(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(PersistenceError, match="Cannot create output directory"):
            ResultPersister(blocker / "out", 10).prepare()

    async def test_persist_writes_json(self, tmp_path: Path):
        persister = ResultPersister(tmp_path, 12)
        outcome = RequestOutcome(index=4, latency_ms=7.0, response=_response(), label="create")
        path = await persister.persist(outcome)

        assert path == tmp_path / "success-05-create.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["status"] == 200
        assert data["body"] == '{"ok": true}'

    async def test_persist_failure(self, tmp_path: Path):
        persister = ResultPersister(tmp_path, 3)
        path = await persister.persist(RequestOutcome(index=1, latency_ms=0.0, error="refused"))
        assert path.name == "failure-2.json"
        assert json.loads(path.read_text()) == {"error": "refused"}

    async def test_persist_missing_directory(self, tmp_path: Path):
        persister = ResultPersister(tmp_path / "missing", 1)
        with pytest.raises(PersistenceError, match="Cannot write response record"):
            await persister.persist(RequestOutcome(index=0, latency_ms=0.0, error="x"))

    async def test_decode_error_is_fatal(self, tmp_path: Path):
        persister = ResultPersister(tmp_path, 1)
        outcome = RequestOutcome(index=0, latency_ms=1.0, response=_response(b"\xff"))
        with pytest.raises(DecodeError):
            await persister.persist(outcome)
        assert list(tmp_path.iterdir()) == []
