"""
Session state for Aetheria.

A Session is the single mutable object the controller owns: the live scene,
the append-only history, the character, and the volatile UI flags. The
snapshot form drops the volatile flags and inline image payloads.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import Field

from ..enums import SessionState
from .character import new_character
from .models import CharacterState, Preferences, Scene, WireModel

INLINE_IMAGE_PREFIX = "data:"


class Snapshot(WireModel):
    """Persisted, sanitized representation of a session."""

    theme: str = ""
    history: list[Scene] = Field(default_factory=list)
    current_scene: Scene | None = None
    character: CharacterState = Field(default_factory=CharacterState)
    preferences: Preferences = Field(default_factory=Preferences)


def strip_inline_image(scene: Scene) -> Scene:
    """Drop embedded image payloads; only addressable URLs survive a snapshot."""
    if scene.image_url and scene.image_url.startswith(INLINE_IMAGE_PREFIX):
        return scene.model_copy(update={"image_url": None})
    return scene


@dataclass
class Session:
    """
    Represents the running story, its character and the view state.
    """
    theme: str = ""
    current_scene: Scene | None = None
    history: list[Scene] = field(default_factory=list)
    character: CharacterState = field(default_factory=new_character)
    preferences: Preferences = field(default_factory=Preferences)

    # Read-side pointer into history; None means the live scene is shown
    viewing_index: int | None = None

    # Volatile, never persisted
    state: SessionState = SessionState.IDLE
    is_speaking: bool = False
    is_listening: bool = False
    error: str | None = None

    @property
    def is_active(self) -> bool:
        """True once a theme produced a scene."""
        return self.current_scene is not None

    @property
    def displayed_scene(self) -> Scene | None:
        """Scene the player is looking at: a history entry or the live scene."""
        if self.viewing_index is not None and 0 <= self.viewing_index < len(self.history):
            return self.history[self.viewing_index]
        return self.current_scene

    def reset(self) -> None:
        """Return to the empty, no-game state. Preferences are kept."""
        self.theme = ""
        self.current_scene = None
        self.history = []
        self.character = new_character()
        self.viewing_index = None
        self.state = SessionState.IDLE
        self.is_speaking = False
        self.is_listening = False
        self.error = None

    def to_snapshot(self) -> Snapshot:
        """Sanitized snapshot: no volatile flags, no inline images."""
        return Snapshot(
            theme=self.theme,
            history=[strip_inline_image(s) for s in self.history],
            current_scene=strip_inline_image(self.current_scene) if self.current_scene else None,
            character=self.character,
            preferences=self.preferences,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the snapshot document for persistence."""
        return self.to_snapshot().model_dump(mode="json", by_alias=True)

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "Session":
        """Rebuild a session; volatile flags come back at their quiescent defaults."""
        session = cls(
            theme=snapshot.theme,
            current_scene=snapshot.current_scene,
            history=list(snapshot.history),
            character=snapshot.character,
            preferences=snapshot.preferences,
        )
        session.state = SessionState.ACTIVE if session.current_scene else SessionState.IDLE
        return session

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Deserialize from a snapshot document."""
        return cls.from_snapshot(Snapshot.model_validate(data))
