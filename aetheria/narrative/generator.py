"""Narrative generator: turns a theme or an action into the next Scene.

The provider returns a ``SceneDraft`` validated strictly against the scene
schema. The draft is then normalized before it becomes a Scene:

- a choice that spends an item the character does not carry loses its
  ``usedItem``;
- blank or duplicate choice ids are renumbered so ids stay unique;
- ``statChanges`` is coerced through the character engine, so stray keys or
  non-numeric values never reach the character.
"""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import Field, ValidationError, field_validator

from ..core.character import coerce_delta, is_real_item, summarize_character
from ..core.models import CharacterState, Choice, Scene, WireModel
from ..llm.provider import LLMProvider
from ..media.failures import AetheriaError, GenerationFailed, MalformedGeneration, classify_failure

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 5


@dataclass
class NarrativeStyle:
    """Shape constraints requested from the story model."""
    min_sentences: int = 2
    max_sentences: int = 4
    opening_choices: int = 3
    min_choices: int = 3
    max_choices: int = 4
    art_style: str = "Cinematic digital art, high fantasy style, detailed lighting"


# ── Generation schema ──────────────────────────────────────────────────

class DraftChoice(WireModel):
    """A choice as the model wrote it; ids are repaired later."""

    id: str = ""
    text: str
    action: str = ""
    used_item: str | None = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("choice text is blank")
        return value


class SceneDraft(WireModel):
    """Structured output of one generation call."""

    title: str
    description: str
    choices: list[DraftChoice] = Field(min_length=1)
    image_prompt: str
    # Advertised as an object but accepted as anything; coerce_delta drops junk
    stat_changes: Any = Field(
        default=None,
        description="Optional: health, sanity, experience (ints), itemFound, statusAdded",
        json_schema_extra={"type": "object"},
    )

    @field_validator("title", "description", "image_prompt")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field is blank")
        return value


NARRATOR_SYSTEM = """You are the narrator of an interactive, illustrated adventure.
Write in second person, present tense. Keep continuity with earlier scenes and
keep the stakes real: choices should matter and can hurt.

Reply only with the requested JSON object:
- title: a short scene title
- description: {min_sentences}-{max_sentences} vivid sentences
- choices: objects with id, text (what the player sees), action (what the
  player does, phrased for the next prompt) and optional usedItem (an item the
  choice spends; only items the character carries)
- imagePrompt: a detailed visual description of this scene for an image
  generator (rendered as: {art_style}); no character names, plot text,
  lettering or UI elements
- statChanges: optional object with health and sanity (signed ints),
  experience (positive int), itemFound and statusAdded (short strings)
"""


# ── Normalization ──────────────────────────────────────────────────────

def renumber_choices(choices: list[DraftChoice]) -> list[DraftChoice]:
    """Give blank or duplicate ids a fresh ordinal id, keeping the order."""
    taken = {c.id.strip() for c in choices if c.id.strip()}
    seen: set[str] = set()
    result = []
    for index, choice in enumerate(choices, start=1):
        cid = choice.id.strip()
        if not cid or cid in seen:
            candidate = str(index)
            while candidate in taken or candidate in seen:
                candidate = f"{candidate}b"
            logger.debug(f"Renumbered choice id {choice.id!r} -> {candidate!r}")
            cid = candidate
        seen.add(cid)
        result.append(choice.model_copy(update={"id": cid}))
    return result


def draft_to_scene(draft: SceneDraft, character: CharacterState) -> Scene:
    """Normalize a validated draft into a Scene for ``character``."""
    delta = coerce_delta(draft.stat_changes)

    # Items the player holds once this scene's own find is counted
    holdable = set(character.inventory)
    if is_real_item(delta.item_found):
        holdable.add(delta.item_found.strip())

    choices = []
    for draft_choice in renumber_choices(draft.choices):
        used_item = draft_choice.used_item
        if used_item is not None and (not is_real_item(used_item) or used_item not in holdable):
            logger.debug(f"Dropping usedItem {used_item!r}: not in inventory")
            used_item = None
        choices.append(Choice(
            id=draft_choice.id,
            text=draft_choice.text,
            action=draft_choice.action.strip() or draft_choice.text,
            used_item=used_item,
        ))

    has_delta = any(v is not None for v in delta.model_dump().values())
    return Scene(
        title=draft.title,
        description=draft.description,
        choices=choices,
        image_prompt=draft.image_prompt,
        stat_changes=delta if has_delta else None,
    )


# ── Generator ──────────────────────────────────────────────────────────

class NarrativeGenerator:
    """Adapter between the session controller and an LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        style: NarrativeStyle | None = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        self.provider = provider
        self.style = style or NarrativeStyle()
        self.history_window = max(history_window, 0)

    def _system_prompt(self) -> str:
        return NARRATOR_SYSTEM.format(
            min_sentences=self.style.min_sentences,
            max_sentences=self.style.max_sentences,
            art_style=self.style.art_style,
        )

    async def generate_opening(self, theme: str, character: CharacterState) -> Scene:
        """Create the first scene for ``theme``."""
        prompt = (
            f'Start a new interactive adventure based on the theme: "{theme}".\n'
            f"Create a compelling opening scene with exactly {self.style.opening_choices} "
            f"distinct choices.\n\n"
            f"Character: {summarize_character(character)}"
        )
        return await self._generate(prompt, character)

    async def generate_next(
        self,
        history: list[Scene],
        choice: Choice,
        character: CharacterState,
        theme: str = "",
    ) -> Scene:
        """Continue the story after the player took ``choice``.

        ``history`` ends with the scene the choice was made in; only the last
        ``history_window`` scenes are sent.
        """
        window = history[-self.history_window:] if self.history_window else []
        context = "\n\n".join(
            f"Scene: {scene.title}\nDescription: {scene.description}" for scene in window
        )
        item_note = f"\nThe player spent: {choice.used_item}." if choice.used_item else ""
        prompt = (
            f'Theme: "{theme}"\n\n'
            f"Recent scenes:\n{context or '(none)'}\n\n"
            f'The player chose: "{choice.text}". Action: "{choice.action}".{item_note}\n\n'
            f"Character: {summarize_character(character)}\n\n"
            f"Generate the next scene with {self.style.min_choices}-{self.style.max_choices} "
            f"new choices. Ensure continuity and stakes."
        )
        return await self._generate(prompt, character)

    async def _generate(self, prompt: str, character: CharacterState) -> Scene:
        try:
            draft = await self.provider.complete_with_schema(
                messages=[{"role": "user", "content": prompt}],
                schema=SceneDraft,
                system=self._system_prompt(),
            )
        except AetheriaError:
            raise
        except ValueError as e:
            # Includes pydantic ValidationError: the model broke the schema
            raise MalformedGeneration(f"Scene output did not match the schema: {e}") from e
        except Exception as e:
            kind = classify_failure(e)
            raise GenerationFailed(f"{self.provider.name} generation failed: {e}", kind) from e

        try:
            scene = draft_to_scene(draft, character)
        except ValidationError as e:
            raise MalformedGeneration(f"Scene output could not be normalized: {e}") from e

        logger.info(f"Generated scene '{scene.title}' with {len(scene.choices)} choices")
        return scene
