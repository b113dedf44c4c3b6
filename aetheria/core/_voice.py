"""Voice mixin: narration of scenes and spoken player input.

Split from orchestrator.py for maintainability.
Narration runs beside the main state machine (``is_speaking``); listening
is a state of its own and hands its transcript to the turn pipeline.
"""

import logging

from ..enums import BUSY_STATES, SessionState
from ..media.failures import InputRejected, PipelineError
from .voice_commands import match_choice

logger = logging.getLogger(__name__)

NOT_HEARD = "I didn't quite catch that. Could you repeat?"
NO_VOICE_INPUT = "Voice input isn't available on this device."


class VoiceMixin:
    """Narration and voice input.

    Relies on instance attributes set by ``SessionController.__init__``.
    """

    # ── Narration ─────────────────────────────────────────────────────

    async def narrate(self) -> bool:
        """Read the displayed scene aloud, replacing any narration in progress."""
        session = self.session
        scene = session.displayed_scene
        if scene is None:
            return False

        prefs = session.preferences
        session.is_speaking = True

        def _finished():
            session.is_speaking = False
            self._after_narration()

        try:
            handle = await self.media.speech.speak(
                scene.narration_text, voice=prefs.voice, speed=prefs.speed, on_complete=_finished,
            )
        except (PipelineError, InputRejected) as e:
            logger.warning(f"Narration unavailable: {e}")
            if not self.media.speaking:
                session.is_speaking = False
            return False

        if handle is None:
            # Superseded while synthesizing; the newer request owns the flag
            return False
        return True

    def stop_narration(self) -> None:
        """Stop narration. The stopped utterance never reports completion."""
        self.media.speech.stop()
        self.session.is_speaking = False

    def _after_narration(self) -> None:
        session = self.session
        if not session.preferences.auto_listen:
            return
        if session.state != SessionState.ACTIVE or session.viewing_index is not None:
            return
        logger.debug("Narration finished; auto-listening")
        self._tasks.spawn(self.listen(), name="auto-listen")

    # ── Voice input ───────────────────────────────────────────────────

    async def listen(self) -> bool:
        """Capture one utterance and act on it.

        With no story running the transcript becomes the theme; otherwise it
        is matched to a choice or submitted as a free-text action.
        """
        session = self.session
        if session.state in BUSY_STATES or session.state == SessionState.LISTENING:
            logger.debug(f"listen() ignored: {session.state}")
            return False
        if session.viewing_index is not None:
            logger.debug("listen() ignored: viewing history")
            return False

        # The microphone should not hear the narrator
        self.stop_narration()

        epoch = self._epoch
        prior_state = session.state
        session.state = SessionState.LISTENING
        session.is_listening = True
        session.error = None
        try:
            transcript = await self.media.recognition.listen()
        except PipelineError as e:
            logger.warning(f"Voice input failed: {e}")
            if epoch == self._epoch:
                session.error = NO_VOICE_INPUT
            return False
        finally:
            if epoch == self._epoch:
                session.is_listening = False
                if session.state == SessionState.LISTENING:
                    session.state = prior_state

        if epoch != self._epoch or transcript is None:
            return False
        return await self.handle_transcript(transcript)

    def stop_listening(self) -> bool:
        """End capture early; what was heard so far is still transcribed."""
        return self.media.recognition.stop_listening()

    async def handle_transcript(self, transcript: str) -> bool:
        """Route a transcript to start/choose/act."""
        text = (transcript or "").strip()
        if not text:
            self.session.error = NOT_HEARD
            return False

        logger.info(f"Heard: {text!r}")
        scene = self.session.current_scene
        if scene is None:
            return await self.start(text)

        choice = match_choice(text, scene.choices)
        if choice is not None:
            logger.info(f"Voice matched choice {choice.id}")
            return await self.choose(choice)
        return await self.act(text)
