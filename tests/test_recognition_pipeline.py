"""Tests for voice input: bounded cloud capture and local fallback."""

import asyncio

import pytest

from aetheria.enums import FailureKind
from aetheria.media.failures import CapabilityAbsent, PipelineError, RecognitionUnavailable
from aetheria.media.recognition import RecognitionPipeline

from .conftest import FakeCapture, FakeLocalRecognizer, FakeTranscriber


def _pipeline(transcriber=None, local=None, max_listen_seconds=10.0, **kwargs):
    return RecognitionPipeline(
        transcriber=transcriber,
        local=local,
        capture_factory=FakeCapture,
        max_listen_seconds=max_listen_seconds,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Tests: cloud tier
# ---------------------------------------------------------------------------

class TestCloudCapture:
    async def test_timer_bounds_capture(self):
        transcriber = FakeTranscriber(result="open the door")
        pipeline = _pipeline(transcriber, max_listen_seconds=0.01)

        assert await pipeline.listen() == "open the door"

        capture = FakeCapture.instances[0]
        assert capture.started and capture.stopped
        assert transcriber.received == [b"RIFF-fake-wav"]
        assert not pipeline.listening

    async def test_stop_listening_submits_early(self):
        transcriber = FakeTranscriber(result="two")
        pipeline = _pipeline(transcriber, max_listen_seconds=60)

        task = asyncio.create_task(pipeline.listen())
        await asyncio.sleep(0)
        assert pipeline.listening
        assert pipeline.stop_listening()

        assert await asyncio.wait_for(task, timeout=1) == "two"
        assert FakeCapture.instances[0].stopped

    async def test_second_listen_rejected_while_running(self):
        pipeline = _pipeline(FakeTranscriber(result="x"), max_listen_seconds=60)

        task = asyncio.create_task(pipeline.listen())
        await asyncio.sleep(0)

        assert await pipeline.listen() is None
        assert len(FakeCapture.instances) == 1

        pipeline.stop_listening()
        await task

    async def test_cancel_discards_audio(self):
        transcriber = FakeTranscriber(result="never")
        pipeline = _pipeline(transcriber, max_listen_seconds=60)

        task = asyncio.create_task(pipeline.listen())
        await asyncio.sleep(0)
        pipeline.cancel()

        assert await asyncio.wait_for(task, timeout=1) is None
        assert FakeCapture.instances[0].aborted
        assert transcriber.received == []
        assert not pipeline.listening

    async def test_empty_transcript_returned_as_is(self):
        pipeline = _pipeline(FakeTranscriber(result=""), max_listen_seconds=0.01)
        assert await pipeline.listen() == ""


# ---------------------------------------------------------------------------
# Tests: fallback to the local recognizer
# ---------------------------------------------------------------------------

class TestLocalFallback:
    async def test_capture_failure_uses_local(self):
        FakeCapture.fail_start = CapabilityAbsent("no microphone permission")
        local = FakeLocalRecognizer(result="climb the wall")
        pipeline = _pipeline(FakeTranscriber(result="unused"), local, max_listen_seconds=0.01)

        assert await pipeline.listen() == "climb the wall"
        assert local.calls == 1

    async def test_no_cloud_access_uses_local(self):
        transcriber = FakeTranscriber(result="unused")
        local = FakeLocalRecognizer(result="wait")
        pipeline = _pipeline(transcriber, local, cloud_allowed=lambda: False)

        assert await pipeline.listen() == "wait"
        assert FakeCapture.instances == []
        assert transcriber.received == []

    async def test_transcription_failure_uses_local(self):
        transcriber = FakeTranscriber(error=PipelineError("503", FailureKind.TRANSIENT))
        local = FakeLocalRecognizer(result="run")
        pipeline = _pipeline(transcriber, local, max_listen_seconds=0.01)

        assert await pipeline.listen() == "run"

    async def test_access_failure_reported(self):
        denied = []
        transcriber = FakeTranscriber(error=PipelineError("bad key", FailureKind.ACCESS))
        pipeline = _pipeline(transcriber, FakeLocalRecognizer(result="run"),
                             max_listen_seconds=0.01, on_access_denied=lambda: denied.append(True))

        await pipeline.listen()
        assert denied == [True]

    async def test_stop_listening_reaches_local(self):
        local = FakeLocalRecognizer(result="hide")
        local.gate = asyncio.Event()
        pipeline = _pipeline(None, local)

        task = asyncio.create_task(pipeline.listen())
        await asyncio.sleep(0)
        pipeline.stop_listening()

        assert await asyncio.wait_for(task, timeout=1) == "hide"
        assert local.stopped

    async def test_cancel_reaches_local(self):
        local = FakeLocalRecognizer(result="hide")
        local.gate = asyncio.Event()
        pipeline = _pipeline(None, local)

        task = asyncio.create_task(pipeline.listen())
        await asyncio.sleep(0)
        pipeline.cancel()

        assert await asyncio.wait_for(task, timeout=1) is None
        assert local.cancelled

    async def test_exhaustion_raises(self):
        FakeCapture.fail_start = CapabilityAbsent("no microphone")
        pipeline = _pipeline(FakeTranscriber(), FakeLocalRecognizer(error=CapabilityAbsent("no whisper")))

        with pytest.raises(RecognitionUnavailable):
            await pipeline.listen()
        assert not pipeline.listening

    async def test_no_tiers_raises(self):
        with pytest.raises(RecognitionUnavailable):
            await _pipeline(None, None).listen()
