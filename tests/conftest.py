"""
Shared test fixtures for the Aetheria test suite.

Provides:
- MockLLMProvider: queue-driven story provider stub (no API keys needed)
- Fake media tiers: image, voice, transcription, local recognition
- FakeAudioOutput / FakeCapture: host audio without hardware
- Controller fixtures wired to a tmp_path snapshot store
"""

import asyncio
import os
from collections import deque
from typing import Any

import pytest

# Keep a developer's .env from leaking cloud keys into tests
os.environ.setdefault("GOOGLE_API_KEY", "")

from pydantic import BaseModel

from aetheria.core.orchestrator import SessionController
from aetheria.db.snapshot_store import SnapshotStore
from aetheria.llm.provider import LLMProvider
from aetheria.media.audio import AudioClip
from aetheria.media.facade import MediaFacade
from aetheria.media.image import ImagePipeline
from aetheria.media.recognition import RecognitionPipeline
from aetheria.media.speech import SpeechPipeline
from aetheria.narrative.generator import NarrativeGenerator

# ---------------------------------------------------------------------------
# MockLLMProvider: deterministic stub
# ---------------------------------------------------------------------------

class MockLLMProvider(LLMProvider):
    """Story provider that returns canned responses from a queue.

    Queue entries may be a model instance, a dict (validated against the
    requested schema, so malformed payloads fail like a real provider) or an
    exception (raised).

    Usage:
        provider = MockLLMProvider()
        provider.queue_schema_response(scene_payload("The Gate"))
        draft = await provider.complete_with_schema(messages=[...], schema=SceneDraft)
    """

    def __init__(self):
        super().__init__(api_key="mock-key", default_model="mock-model")
        self._schema_queue: deque[Any] = deque()
        self._call_history: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None

    # --- Queue helpers ---

    def queue_schema_response(self, response: BaseModel | dict | Exception):
        """Queue a structured response (or an exception to raise)."""
        self._schema_queue.append(response)

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return self._call_history

    # --- LLMProvider interface ---

    @property
    def name(self) -> str:
        return "mock"

    def get_default_model(self) -> str:
        return "mock-model"

    def _init_client(self):
        self._client = object()

    async def complete_with_schema(
        self,
        messages,
        schema,
        system=None,
        model=None,
        max_tokens=2048,
        temperature=0.9,
    ):
        self._call_history.append({
            "method": "complete_with_schema",
            "messages": messages,
            "schema": schema,
            "system": system,
        })
        if self.gate is not None:
            await self.gate.wait()
        if not self._schema_queue:
            raise AssertionError("MockLLMProvider: no response queued")
        response = self._schema_queue.popleft()
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return schema.model_validate(response)
        return response


def scene_payload(
    title: str = "The Gate",
    choices: list[dict] | None = None,
    stat_changes: Any = None,
    **extra,
) -> dict:
    """Generation output as the story model would send it (camelCase)."""
    payload = {
        "title": title,
        "description": f"You stand before {title.lower()}. Mist curls at your feet.",
        "choices": choices if choices is not None else [
            {"id": "1", "text": "Open the iron door", "action": "open the iron door"},
            {"id": "2", "text": "Climb the crumbling wall", "action": "climb the wall"},
            {"id": "3", "text": "Wait for nightfall", "action": "wait until dark"},
        ],
        "imagePrompt": f"A misty landscape, {title.lower()}, moonlight",
    }
    if stat_changes is not None:
        payload["statChanges"] = stat_changes
    payload.update(extra)
    return payload


# ---------------------------------------------------------------------------
# Fake media tiers
# ---------------------------------------------------------------------------

class FakeImageTier:
    """Image tier returning queued outcomes (str refs or exceptions)."""

    def __init__(self, name: str = "primary", outcomes: list | None = None, cloud: bool = True):
        self.name = name
        self.cloud = cloud
        self.outcomes = deque(outcomes or [])
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        self.calls.append((prompt, aspect_ratio))
        if self.outcomes:
            outcome = self.outcomes.popleft()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return f"https://images.test/{self.name}/{len(self.calls)}.png"


class FakeVoiceTier:
    """Voice tier returning a clip, raising, or waiting on a gate."""

    def __init__(self, name: str = "cloud-voice", cloud: bool = True, error: Exception | None = None):
        self.name = name
        self.cloud = cloud
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, str, float]] = []

    async def synthesize(self, text: str, voice: str, speed: float) -> AudioClip:
        self.calls.append((text, voice, speed))
        if self.gate is not None:
            gate, self.gate = self.gate, None
            await gate.wait()
        if self.error is not None:
            raise self.error
        return AudioClip(data=f"{self.name}:{text}".encode(), mime_type="audio/wav")


class FakeAudioOutput:
    """Records plays; completion is triggered explicitly by the test."""

    def __init__(self):
        self.plays: list[dict[str, Any]] = []

    def play(self, clip, on_finished):
        record = {"clip": clip, "on_finished": on_finished, "stopped": False}
        self.plays.append(record)

        def _stop():
            record["stopped"] = True

        return _stop

    def finish(self, index: int = -1):
        """Simulate the clip at ``index`` playing to the end."""
        self.plays[index]["on_finished"]()


class FakeCapture:
    """Microphone stand-in; every instance is recorded on the class."""

    instances: list["FakeCapture"] = []
    fail_start: Exception | None = None

    def __init__(self):
        self.started = False
        self.stopped = False
        self.aborted = False
        FakeCapture.instances.append(self)

    def start(self):
        if FakeCapture.fail_start is not None:
            raise FakeCapture.fail_start
        self.started = True

    def stop(self) -> bytes:
        self.stopped = True
        return b"RIFF-fake-wav"

    def abort(self):
        self.aborted = True


class FakeTranscriber:
    name = "fake-transcriber"
    cloud = True

    def __init__(self, result: str = "", error: Exception | None = None):
        self.result = result
        self.error = error
        self.received: list[bytes] = []

    async def transcribe(self, wav: bytes) -> str:
        self.received.append(wav)
        if self.error is not None:
            raise self.error
        return self.result


class FakeLocalRecognizer:
    name = "fake-local"
    cloud = False

    def __init__(self, result: str = "", error: Exception | None = None):
        self.result = result
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls = 0
        self.stopped = False
        self.cancelled = False

    async def recognize(self) -> str:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result

    def stop(self):
        self.stopped = True
        if self.gate is not None:
            self.gate.set()

    def cancel(self):
        self.cancelled = True
        if self.gate is not None:
            self.gate.set()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_fake_capture():
    FakeCapture.instances = []
    FakeCapture.fail_start = None
    yield
    FakeCapture.instances = []
    FakeCapture.fail_start = None


@pytest.fixture
def mock_provider():
    return MockLLMProvider()


@pytest.fixture
def generator(mock_provider):
    return NarrativeGenerator(mock_provider)


@pytest.fixture
def audio_output():
    return FakeAudioOutput()


@pytest.fixture
def image_tier():
    return FakeImageTier()


@pytest.fixture
def voice_tier():
    return FakeVoiceTier()


@pytest.fixture
def transcriber():
    return FakeTranscriber(result="")


@pytest.fixture
def probe_calls():
    return []


@pytest.fixture
def media(image_tier, voice_tier, audio_output, transcriber, probe_calls):
    def _probe():
        probe_calls.append(True)
        return True

    return MediaFacade(
        images=ImagePipeline([image_tier]),
        speech=SpeechPipeline([voice_tier], output=audio_output),
        recognition=RecognitionPipeline(
            transcriber=transcriber,
            local=None,
            capture_factory=FakeCapture,
            max_listen_seconds=0.01,
        ),
        probe=_probe,
    )


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(data_dir=tmp_path)


@pytest.fixture
def controller(generator, media, store):
    return SessionController(generator=generator, media=media, store=store)
