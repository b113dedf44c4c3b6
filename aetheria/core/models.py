"""Pydantic models for scenes, choices, character state and preferences.

Generation output and snapshots use camelCase keys (``imagePrompt``,
``usedItem``...), so every model carries camelCase aliases and accepts either
spelling on input.
"""

import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..enums import NarratorVoice

MIN_SPEED = 0.5
MAX_SPEED = 2.0
DEFAULT_MAX_HEALTH = 100
MAX_SANITY = 100


class WireModel(BaseModel):
    """Base for models that cross the generator or snapshot boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def new_scene_id() -> str:
    return uuid.uuid4().hex


class Choice(WireModel):
    """One option offered to the player at the end of a scene."""

    id: str
    text: str
    action: str
    used_item: str | None = Field(
        default=None,
        description="Inventory item consumed when this choice is taken",
    )


class StatDelta(WireModel):
    """Character changes emitted by the narrative generator for one scene."""

    health: int | None = None
    sanity: int | None = None
    experience: int | None = None
    item_found: str | None = None
    status_added: str | None = None


class Scene(WireModel):
    """One narrative beat with its illustration and choice set."""

    id: str = Field(default_factory=new_scene_id)
    title: str
    description: str
    choices: list[Choice] = Field(default_factory=list)
    image_prompt: str
    image_url: str | None = None
    stat_changes: StatDelta | None = None

    @property
    def narration_text(self) -> str:
        return f"{self.title}. {self.description}"


class CharacterState(WireModel):
    """Bounded numeric and inventory model of the player character.

    Only the functions in ``core.character`` produce new instances.
    """

    health: int = DEFAULT_MAX_HEALTH
    max_health: int = DEFAULT_MAX_HEALTH
    sanity: int = MAX_SANITY
    experience: int = 0
    inventory: list[str] = Field(default_factory=list)
    status_effects: list[str] = Field(default_factory=list)


class Preferences(WireModel):
    """Narration and voice-input settings that survive restarts."""

    narrate_on_generation: bool = True
    auto_listen: bool = False
    voice: NarratorVoice = NarratorVoice.CHARON
    speed: float = Field(default=1.0, allow_inf_nan=False)

    @field_validator("speed")
    @classmethod
    def _clamp_speed(cls, value: float) -> float:
        return min(max(value, MIN_SPEED), MAX_SPEED)
