"""Session controller for Aetheria.

Composed from two domain-specific mixins:

    TurnPipelineMixin  – theme / choice / action submission
    VoiceMixin         – narration and voice input

This file retains initialization, history viewing, preferences and the
session lifecycle (restore, reset, shutdown).
"""

import logging
from typing import Any

from ..db.snapshot_store import SnapshotStore
from ..enums import BUSY_STATES, NarratorVoice, SessionState
from ..media.facade import MediaFacade
from ..narrative.generator import NarrativeGenerator
from ..utils.tasks import TaskGroup
from ._turn_pipeline import TurnPipelineMixin
from ._voice import VoiceMixin
from .models import Preferences, Scene
from .session import Session

logger = logging.getLogger(__name__)


class SessionController(TurnPipelineMixin, VoiceMixin):
    """Owns the Session and sequences the generator, media and persistence.

    Player mutations are serialized by state gating: while a request is in
    flight every submission is a no-op returning False. ``reset`` bumps an
    epoch so results arriving for a destroyed session are dropped.
    """

    def __init__(
        self,
        generator: NarrativeGenerator,
        media: MediaFacade,
        store: SnapshotStore | None = None,
    ):
        """
        Args:
            generator: Narrative generator (owns the history window).
            media: Media facade with the image, speech and recognition pipelines.
            store: Snapshot store; None disables persistence.
        """
        self.generator = generator
        self.media = media
        self.store = store
        self.session = Session()
        self._tasks = TaskGroup()
        self._epoch = 0

    # ── Read side ─────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def displayed_scene(self) -> Scene | None:
        return self.session.displayed_scene

    @property
    def cloud_access(self) -> bool:
        return self.media.cloud_access

    def view_history(self, index: int) -> bool:
        """Show a past scene. Never changes the story itself."""
        if not 0 <= index < len(self.session.history):
            logger.debug(f"view_history({index}) out of range")
            return False
        self.session.viewing_index = index
        return True

    def return_to_live(self) -> None:
        self.session.viewing_index = None

    # ── Preferences ───────────────────────────────────────────────────

    def set_preferences(self, **changes: Any) -> Preferences:
        """Update narration and voice-input settings and persist them.

        Accepts ``narrate_on_generation``, ``auto_listen``, ``voice`` and
        ``speed``; speed is clamped to the supported range.

        Raises:
            TypeError: An unknown preference name was given.
            ValueError: A value failed validation (an unknown voice, a non-finite speed).
        """
        unknown = set(changes) - set(Preferences.model_fields)
        if unknown:
            raise TypeError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        if "voice" in changes and isinstance(changes["voice"], str):
            changes["voice"] = _voice_from_name(changes["voice"])

        merged = {**self.session.preferences.model_dump(), **changes}
        self.session.preferences = Preferences.model_validate(merged)
        logger.info(f"Preferences updated: {', '.join(sorted(changes))}")
        self._save()
        return self.session.preferences

    # ── Lifecycle ─────────────────────────────────────────────────────

    def _save(self) -> None:
        # A turn in flight has history pushed but no new scene yet
        if self.session.state in BUSY_STATES:
            logger.debug("Save deferred until the turn settles")
            return
        if self.store is not None:
            self.store.save(self.session)

    def restore(self) -> bool:
        """Load the last snapshot at cold start.

        Scenes whose inline image was stripped on save are re-illustrated in
        the background.
        """
        if self.store is None or self.session.is_active:
            return False
        restored = self.store.load_session()
        if restored is None:
            return False

        self.session = restored
        logger.info(
            f"Restored session '{restored.theme}' ({len(restored.history)} past scenes)"
        )
        if any(s.image_url is None for s in self._all_scenes()):
            self._tasks.spawn(self._reillustrate(self._epoch), name="reillustrate")
        return True

    def _all_scenes(self) -> list[Scene]:
        scenes = list(self.session.history)
        if self.session.current_scene is not None:
            scenes.append(self.session.current_scene)
        return scenes

    async def _reillustrate(self, epoch: int) -> None:
        # Live scene first, then history newest to oldest
        pending = [s for s in reversed(self._all_scenes()) if s.image_url is None]
        for scene in pending:
            url = await self.media.illustrate(scene.image_prompt)
            if epoch != self._epoch:
                return
            self._set_image(scene.id, url)
        self._save()

    def _set_image(self, scene_id: str, url: str) -> None:
        session = self.session
        if session.current_scene is not None and session.current_scene.id == scene_id:
            session.current_scene = session.current_scene.model_copy(update={"image_url": url})
        for i, past in enumerate(session.history):
            if past.id == scene_id and past.image_url is None:
                session.history[i] = past.model_copy(update={"image_url": url})

    def reset(self) -> None:
        """Destroy the session and purge its snapshot. Preferences are kept."""
        self._epoch += 1
        self._tasks.cancel_all()
        self.media.speech.stop()
        self.media.recognition.cancel()
        self.session.reset()
        if self.store is not None:
            self.store.clear()
        logger.info("Session reset")

    async def close(self) -> None:
        """Stop audio and background work before exit."""
        self.media.speech.stop()
        self.media.recognition.cancel()
        self._tasks.cancel_all()
        await self._tasks.drain()


def _voice_from_name(name: str) -> NarratorVoice:
    for voice in NarratorVoice:
        if voice.value.lower() == name.strip().lower():
            return voice
    raise ValueError(f"Unknown voice '{name}'. Choose from: {', '.join(v.value for v in NarratorVoice)}")
