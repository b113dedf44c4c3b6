"""Tests for narration: tier fallback and exclusive playback."""

import asyncio
import sys

import pytest

from aetheria.enums import FailureKind
from aetheria.media.failures import CapabilityAbsent, InputRejected, PipelineError, VoiceUnavailable
from aetheria.media.speech import (
    EdgeVoiceTier,
    SpeechPipeline,
    clean_text_for_speech,
    speed_to_rate,
)

from .conftest import FakeAudioOutput, FakeVoiceTier


@pytest.fixture
def output():
    return FakeAudioOutput()


# ---------------------------------------------------------------------------
# Tests: tiers
# ---------------------------------------------------------------------------

class TestTiers:
    async def test_cloud_tier_used_first(self, output):
        cloud, local = FakeVoiceTier("cloud"), FakeVoiceTier("local", cloud=False)
        pipeline = SpeechPipeline([cloud, local], output=output)

        handle = await pipeline.speak("The gate opens.", voice="Kore", speed=1.0)

        assert handle is not None
        assert cloud.calls == [("The gate opens.", "Kore", 1.0)]
        assert local.calls == []
        assert output.plays[0]["clip"].data == b"cloud:The gate opens."

    async def test_any_cloud_failure_falls_through(self, output):
        cloud = FakeVoiceTier("cloud", error=PipelineError("503", FailureKind.TRANSIENT))
        local = FakeVoiceTier("local", cloud=False)
        pipeline = SpeechPipeline([cloud, local], output=output)

        await pipeline.speak("Hello")

        assert len(local.calls) == 1
        assert output.plays[0]["clip"].data == b"local:Hello"

    async def test_cloud_skipped_without_access(self, output):
        cloud, local = FakeVoiceTier("cloud"), FakeVoiceTier("local", cloud=False)
        pipeline = SpeechPipeline([cloud, local], output=output, cloud_allowed=lambda: False)

        await pipeline.speak("Hello")

        assert cloud.calls == []
        assert len(local.calls) == 1

    async def test_exhaustion_raises_voice_unavailable(self, output):
        cloud = FakeVoiceTier("cloud", error=PipelineError("quota", FailureKind.QUOTA))
        local = FakeVoiceTier("local", cloud=False, error=CapabilityAbsent("no engine"))
        pipeline = SpeechPipeline([cloud, local], output=output)

        with pytest.raises(VoiceUnavailable):
            await pipeline.speak("Hello")
        assert output.plays == []

    async def test_access_failure_reported(self, output):
        denied = []
        cloud = FakeVoiceTier("cloud", error=PipelineError("bad key", FailureKind.ACCESS))
        local = FakeVoiceTier("local", cloud=False)
        pipeline = SpeechPipeline([cloud, local], output=output,
                                  on_access_denied=lambda: denied.append(True))
        await pipeline.speak("Hello")
        assert denied == [True]

    async def test_blank_text_rejected(self, output):
        pipeline = SpeechPipeline([FakeVoiceTier()], output=output)
        with pytest.raises(InputRejected):
            await pipeline.speak("  **  ")


# ---------------------------------------------------------------------------
# Tests: playback ownership
# ---------------------------------------------------------------------------

class TestPlayback:
    async def test_completion_fires_once(self, output):
        done = []
        pipeline = SpeechPipeline([FakeVoiceTier()], output=output)

        await pipeline.speak("Hello", on_complete=lambda: done.append(1))
        assert pipeline.speaking

        output.finish()
        output.finish()
        assert done == [1]
        assert not pipeline.speaking

    async def test_new_utterance_cancels_previous(self, output):
        done = []
        pipeline = SpeechPipeline([FakeVoiceTier()], output=output)

        first = await pipeline.speak("One", on_complete=lambda: done.append("one"))
        second = await pipeline.speak("Two", on_complete=lambda: done.append("two"))

        assert first.cancelled
        assert output.plays[0]["stopped"]
        # A late completion from the superseded clip is ignored
        output.finish(0)
        assert done == []
        assert second.active
        output.finish(1)
        assert done == ["two"]

    async def test_superseded_during_synthesis_is_dropped(self, output):
        slow = FakeVoiceTier("cloud")
        gate = asyncio.Event()
        slow.gate = gate
        pipeline = SpeechPipeline([slow], output=output)

        first = asyncio.create_task(pipeline.speak("One"))
        await asyncio.sleep(0)
        second = await pipeline.speak("Two")
        gate.set()

        assert await first is None
        assert second is not None
        assert [p["clip"].data for p in output.plays] == [b"cloud:Two"]

    async def test_stop_cancels_without_completion(self, output):
        done = []
        pipeline = SpeechPipeline([FakeVoiceTier()], output=output)
        await pipeline.speak("Hello", on_complete=lambda: done.append(1))

        pipeline.stop()

        assert output.plays[0]["stopped"]
        assert not pipeline.speaking
        output.finish()
        assert done == []

    async def test_playback_error_becomes_voice_unavailable(self):
        class BrokenOutput:
            def play(self, clip, on_finished):
                raise CapabilityAbsent("no audio device")

        pipeline = SpeechPipeline([FakeVoiceTier()], output=BrokenOutput())
        with pytest.raises(VoiceUnavailable):
            await pipeline.speak("Hello")
        assert not pipeline.speaking


# ---------------------------------------------------------------------------
# Tests: helpers and the keyless tier
# ---------------------------------------------------------------------------

class TestHelpers:
    @pytest.mark.parametrize("speed,rate", [
        (1.0, "+0%"),
        (1.25, "+25%"),
        (0.5, "-50%"),
        (2.0, "+100%"),
    ])
    def test_speed_to_rate(self, speed, rate):
        assert speed_to_rate(speed) == rate

    def test_clean_text_strips_markdown(self):
        assert clean_text_for_speech("**The Gate**\n\n# Night\nYou `wait`.") == "The Gate. Night You ."

    async def test_edge_tier_absent_without_engine(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "edge_tts", None)
        with pytest.raises(CapabilityAbsent):
            await EdgeVoiceTier().synthesize("Hello", "Charon", 1.0)
