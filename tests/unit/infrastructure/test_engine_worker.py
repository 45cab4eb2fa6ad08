"""Tests for EngineWorker — serial request handling, profile fallback, cleanup."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import pytest

from reencode.domain.models import EngineProfile
from reencode.domain.profiles import H264_CFR30
from reencode.infrastructure.adapters.engine_worker import EngineWorker, mime_for

if TYPE_CHECKING:
    from conftest import FakeMediaEngine

_PROFILES = (EngineProfile("multi-thread", threads=0), EngineProfile("single-thread", threads=1))


def _make_worker(engine: FakeMediaEngine) -> tuple[EngineWorker, list[dict[str, Any]]]:
    events: list[dict[str, Any]] = []

    def listener(message: Mapping[str, Any]) -> None:
        events.append(dict(message))

    worker = EngineWorker(engine, _PROFILES)
    worker.connect(listener)
    engine.set_log_handler(worker._on_engine_log)
    return worker, events


def _concat_request(run_id: str = "run-1") -> dict[str, Any]:
    return {
        "op": "concat",
        "segments": [{"name": "seg0.webm", "data": b"aa"}, {"name": "seg1.webm", "data": b"bb"}],
        "outputName": "merged.webm",
        "runId": run_id,
        "phase": "merge",
    }


def _transcode_request() -> dict[str, Any]:
    return {
        "op": "transcode",
        "inputName": "merged.webm",
        "inputData": b"abcdef",
        "outputName": "reencoded.mp4",
        "args": list(H264_CFR30.args),
        "runId": "run-1",
        "phase": "transcode",
    }


def _terminal(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [e for e in events if e["event"] != "progress"]


class TestLoad:
    async def test_load_emits_loaded(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "load"})

        assert _terminal(events) == [{"event": "loaded"}]
        assert worker.active_profile == _PROFILES[0]

    async def test_fallback_emits_single_loaded(self, fake_engine: FakeMediaEngine) -> None:
        fake_engine.failing_profiles = {"multi-thread"}
        worker, events = _make_worker(fake_engine)

        await worker.handle({"op": "load"})

        assert fake_engine.load_attempts == ["multi-thread", "single-thread"]
        assert _terminal(events) == [{"event": "loaded"}]
        assert worker.active_profile is not None
        assert worker.active_profile.name == "single-thread"

    async def test_all_profiles_fail(self, fake_engine: FakeMediaEngine) -> None:
        fake_engine.failing_profiles = {"multi-thread", "single-thread"}
        worker, events = _make_worker(fake_engine)

        await worker.handle({"op": "load"})

        (error,) = _terminal(events)
        assert error["event"] == "error"
        assert error["phase"] == "load"
        assert "runId" not in error
        assert "multi-thread: probe failed" in error["message"]
        assert "single-thread: probe failed" in error["message"]
        assert not worker.is_loaded

    async def test_repeated_load_answers_again(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "load"})
        await worker.handle({"op": "load"})

        assert _terminal(events) == [{"event": "loaded"}, {"event": "loaded"}]
        assert fake_engine.load_attempts == ["multi-thread"]


class TestConcat:
    async def test_stream_copy_concat(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "load"})
        events.clear()

        await worker.handle(_concat_request())

        (result,) = _terminal(events)
        assert result == {
            "event": "result",
            "outputName": "merged.webm",
            "mimeType": "video/webm",
            "data": b"aabb",
            "runId": "run-1",
            "phase": "merge",
        }
        assert fake_engine.exec_calls == [
            ["-f", "concat", "-safe", "0", "-i", "list.txt", "-c", "copy", "merged.webm"]
        ]

    async def test_artifacts_removed_after_success(self, fake_engine: FakeMediaEngine) -> None:
        worker, _ = _make_worker(fake_engine)
        await worker.handle(_concat_request())

        assert fake_engine.files == {}
        assert set(fake_engine.deleted) == {"seg0.webm", "seg1.webm", "list.txt", "merged.webm"}

    async def test_failure_cleans_up_and_reports_correlation(self, fake_engine: FakeMediaEngine) -> None:
        fake_engine.failing_outputs = {"merged.webm"}
        worker, events = _make_worker(fake_engine)

        await worker.handle(_concat_request("run-7"))

        error = _terminal(events)[-1]
        assert error == {
            "event": "error",
            "message": "encode failed for merged.webm",
            "runId": "run-7",
            "phase": "merge",
        }
        assert fake_engine.files == {}

    async def test_failed_delete_does_not_mask_result(
        self, fake_engine: FakeMediaEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        fake_engine.failing_deletes = {"list.txt"}
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "load"})
        events.clear()

        await worker.handle(_concat_request())

        (result,) = _terminal(events)
        assert result["event"] == "result"
        assert result["data"] == b"aabb"
        assert set(fake_engine.deleted) == {"seg0.webm", "seg1.webm", "merged.webm"}
        assert set(fake_engine.files) == {"list.txt"}
        assert "Failed to delete engine artifact list.txt" in caplog.text

    async def test_engine_log_lines_become_progress(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle(_concat_request())

        progress = [e for e in events if e["event"] == "progress"]
        assert progress
        assert progress[0]["message"].startswith("exec -f concat")

    async def test_implicit_load_before_first_operation(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle(_concat_request())

        assert [e["event"] for e in _terminal(events)] == ["loaded", "result"]


class TestTranscode:
    async def test_input_args_output_order(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle(_transcode_request())

        assert fake_engine.exec_calls == [["-i", "merged.webm", *H264_CFR30.args, "reencoded.mp4"]]
        result = _terminal(events)[-1]
        assert result["mimeType"] == "video/mp4"
        assert result["data"] == b"abc"
        assert fake_engine.files == {}

    async def test_failure_reports_transcode_phase(self, fake_engine: FakeMediaEngine) -> None:
        fake_engine.failing_outputs = {"reencoded.mp4"}
        worker, events = _make_worker(fake_engine)

        await worker.handle(_transcode_request())

        error = _terminal(events)[-1]
        assert error["event"] == "error"
        assert error["phase"] == "transcode"
        assert error["runId"] == "run-1"


    async def test_failed_delete_keeps_original_error(self, fake_engine: FakeMediaEngine) -> None:
        fake_engine.failing_outputs = {"reencoded.mp4"}
        fake_engine.failing_deletes = {"merged.webm"}
        worker, events = _make_worker(fake_engine)

        await worker.handle(_transcode_request())

        terminal = _terminal(events)
        assert [e["event"] for e in terminal] == ["loaded", "error"]
        assert terminal[-1]["message"] == "encode failed for reencoded.mp4"
        assert fake_engine.deleted == ["reencoded.mp4"]


class TestProtocol:
    async def test_malformed_request_reports_error(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "concat", "runId": "run-1", "phase": "merge"})

        (error,) = _terminal(events)
        assert error["event"] == "error"
        assert "segments" in error["message"]
        assert error["runId"] == "run-1"

    async def test_unknown_op(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        await worker.handle({"op": "explode"})
        assert "Unknown engine op" in _terminal(events)[-1]["message"]


class TestLifecycle:
    async def test_post_requires_running_worker(self, fake_engine: FakeMediaEngine) -> None:
        worker, _ = _make_worker(fake_engine)
        with pytest.raises(RuntimeError, match="not running"):
            worker.post({"op": "load"})

    async def test_queued_requests_processed_in_order(self, fake_engine: FakeMediaEngine) -> None:
        worker, events = _make_worker(fake_engine)
        worker.start()
        assert worker.is_running

        worker.post({"op": "load"})
        worker.post(_concat_request())
        worker.post(_transcode_request())
        await worker.stop()

        assert [e["event"] for e in _terminal(events)] == ["loaded", "result", "result"]
        assert not worker.is_running

    async def test_requires_profiles(self, fake_engine: FakeMediaEngine) -> None:
        with pytest.raises(ValueError, match="profiles"):
            EngineWorker(fake_engine, [])


class TestMimeFor:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("reencoded.mp4", "video/mp4"),
            ("merged.WEBM", "video/webm"),
            ("clip.mov", "video/quicktime"),
            ("notes.txt", "application/octet-stream"),
        ],
    )
    def test_mime(self, name: str, expected: str) -> None:
        assert mime_for(name) == expected
