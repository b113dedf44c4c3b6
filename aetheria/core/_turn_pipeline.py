"""Turn pipeline mixin: theme, choice and free-text submission.

Split from orchestrator.py for maintainability.
Contains the full turn flow: gate -> consume item -> generate -> illustrate
-> commit -> persist -> schedule narration.
"""

import asyncio
import logging
import uuid

from ..enums import BUSY_STATES, FailureKind, SessionState
from ..media.failures import classify_failure
from .character import apply_delta, consume_item
from .models import Choice, Scene

logger = logging.getLogger(__name__)

OPENING_FAILED = "Failed to weave the beginning."
CONTINUATION_FAILED = "The story path was blocked."

FAILURE_MESSAGES = {
    FailureKind.ACCESS: "The loom needs a key. Set GOOGLE_API_KEY (or ANTHROPIC_API_KEY) and try again.",
    FailureKind.QUOTA: "The loom is overworked right now. Try again in a little while.",
    FailureKind.TRANSIENT: "The threads slipped. Please try again.",
}


def failure_message(kind: FailureKind, opening: bool) -> str:
    """Player-facing text for a failed generation."""
    if kind in FAILURE_MESSAGES:
        return FAILURE_MESSAGES[kind]
    return OPENING_FAILED if opening else CONTINUATION_FAILED


class TurnPipelineMixin:
    """Submission gating and the generate/illustrate/commit sequence.

    Relies on instance attributes set by ``SessionController.__init__``.
    """

    def _can_submit(self) -> bool:
        session = self.session
        if session.state in BUSY_STATES:
            logger.debug(f"Submission ignored: {session.state}")
            return False
        if session.viewing_index is not None:
            logger.debug("Submission ignored: viewing history")
            return False
        return True

    def _reject_input(self, message: str) -> bool:
        self.session.error = message
        logger.info(f"Input rejected: {message}")
        return False

    async def start(self, theme: str) -> bool:
        """Begin a new story from ``theme``. Only valid with no active game."""
        if not self._can_submit():
            return False
        if self.session.is_active:
            logger.debug("start() ignored: a story is already running")
            return False
        theme = (theme or "").strip()
        if not theme:
            return self._reject_input("Tell me what kind of tale to weave.")
        return await self._run_turn(theme=theme, choice=None)

    async def choose(self, choice_or_id: Choice | str) -> bool:
        """Take one of the live scene's choices (by object or id)."""
        if not self._can_submit():
            return False
        scene = self.session.current_scene
        if scene is None:
            return False

        wanted = choice_or_id.id if isinstance(choice_or_id, Choice) else str(choice_or_id).strip()
        choice = next((c for c in scene.choices if c.id == wanted), None)
        if choice is None:
            return self._reject_input(f"There is no choice '{wanted}' in this scene.")
        return await self._run_turn(theme=self.session.theme, choice=choice)

    async def act(self, text: str) -> bool:
        """Submit a free-text action as an ad-hoc choice."""
        if not self._can_submit():
            return False
        if self.session.current_scene is None:
            return False
        text = (text or "").strip()
        if not text:
            return self._reject_input("Say what you do next.")
        choice = Choice(id=f"custom-{uuid.uuid4().hex[:8]}", text=text, action=text)
        return await self._run_turn(theme=self.session.theme, choice=choice)

    async def _run_turn(self, theme: str, choice: Choice | None) -> bool:
        session = self.session
        epoch = self._epoch
        opening = choice is None

        if self.media.recognition.listening:
            self.media.recognition.cancel()
        self.stop_narration()

        prev_scene = session.current_scene
        prev_history = list(session.history)
        prior_state = SessionState.ACTIVE if prev_scene else SessionState.IDLE

        # Item consumption is committed before the request and kept on failure
        if choice is not None and choice.used_item:
            session.character = consume_item(session.character, choice.used_item)
            logger.info(f"Consumed item: {choice.used_item}")
        character_before = session.character

        if prev_scene is not None:
            session.history.append(prev_scene)
        session.viewing_index = None
        session.error = None
        session.state = SessionState.AWAITING_GENERATION

        try:
            if opening:
                scene = await self.generator.generate_opening(theme, session.character)
            else:
                logger.info(f"Turn: {choice.action!r}")
                scene = await self.generator.generate_next(
                    session.history, choice, session.character, theme=theme,
                )
        except asyncio.CancelledError:
            if epoch == self._epoch:
                self._rollback(prev_scene, prev_history, character_before, prior_state)
                self._save()
            raise
        except Exception as e:
            if epoch != self._epoch:
                logger.debug("Generation failed after reset; ignoring")
                return False
            kind = classify_failure(e)
            logger.error(f"Generation failed ({kind}): {e}")
            self._rollback(prev_scene, prev_history, character_before, prior_state)
            session.error = failure_message(kind, opening)
            if kind == FailureKind.ACCESS:
                self.media.refresh_access()
            self._save()
            return False

        if epoch != self._epoch:
            logger.debug("Scene arrived after reset; discarding")
            return False

        session.state = SessionState.AWAITING_ILLUSTRATION
        try:
            image_url = await self.media.illustrate(scene.image_prompt)
        except asyncio.CancelledError:
            if epoch == self._epoch:
                self._rollback(prev_scene, prev_history, character_before, prior_state)
                self._save()
            raise
        if epoch != self._epoch:
            logger.debug("Illustration arrived after reset; discarding")
            return False

        self._commit_scene(scene.model_copy(update={"image_url": image_url}), theme)
        return True

    def _rollback(self, prev_scene: Scene | None, prev_history: list[Scene], character, state) -> None:
        session = self.session
        session.current_scene = prev_scene
        session.history = prev_history
        session.character = character
        session.state = state

    def _commit_scene(self, scene: Scene, theme: str) -> None:
        session = self.session
        session.theme = theme
        session.current_scene = scene
        if scene.stat_changes is not None:
            session.character = apply_delta(session.character, scene.stat_changes)
        session.viewing_index = None
        session.state = SessionState.ACTIVE
        logger.info(f"Scene committed: '{scene.title}' ({len(session.history)} in history)")
        self._save()

        if session.preferences.narrate_on_generation:
            self._tasks.spawn(self.narrate(), name="narrate-scene")
