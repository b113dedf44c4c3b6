"""Tests for the narrative generator adapter and draft normalization."""

import pytest

from aetheria.core.models import CharacterState, Choice, Scene
from aetheria.enums import FailureKind
from aetheria.media.failures import GenerationFailed, MalformedGeneration
from aetheria.narrative.generator import (
    DraftChoice,
    NarrativeGenerator,
    NarrativeStyle,
    SceneDraft,
    renumber_choices,
)

from .conftest import scene_payload


def _scene(title: str) -> Scene:
    return Scene(title=title, description=f"{title} happened.", image_prompt=title)


class _RateLimitError(Exception):
    status_code = 429


# ---------------------------------------------------------------------------
# Tests: opening and continuation requests
# ---------------------------------------------------------------------------

class TestRequests:
    async def test_opening_scene(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload("The Gate"))

        scene = await generator.generate_opening("a haunted mill", CharacterState())

        assert scene.title == "The Gate"
        assert [c.id for c in scene.choices] == ["1", "2", "3"]
        assert scene.image_url is None
        call = mock_provider.call_history[0]
        assert call["schema"] is SceneDraft
        assert "a haunted mill" in call["messages"][0]["content"]
        assert "2-4 vivid sentences" in call["system"]

    async def test_each_scene_gets_fresh_id(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload("A"))
        mock_provider.queue_schema_response(scene_payload("B"))
        first = await generator.generate_opening("x", CharacterState())
        second = await generator.generate_opening("x", CharacterState())
        assert first.id != second.id

    async def test_history_window(self, mock_provider):
        generator = NarrativeGenerator(mock_provider, history_window=5)
        mock_provider.queue_schema_response(scene_payload("Next"))
        history = [_scene(f"Scene{i}") for i in range(7)]
        choice = Choice(id="1", text="Run", action="run for the trees")

        await generator.generate_next(history, choice, CharacterState(), theme="forest")

        prompt = mock_provider.call_history[0]["messages"][0]["content"]
        assert "Scene0" not in prompt and "Scene1" not in prompt
        for i in range(2, 7):
            assert f"Scene{i}" in prompt
        assert "run for the trees" in prompt

    async def test_style_shapes_prompt(self, mock_provider):
        style = NarrativeStyle(min_sentences=1, max_sentences=2, opening_choices=4)
        generator = NarrativeGenerator(mock_provider, style=style)
        mock_provider.queue_schema_response(scene_payload())

        await generator.generate_opening("x", CharacterState())

        call = mock_provider.call_history[0]
        assert "1-2 vivid sentences" in call["system"]
        assert "exactly 4" in call["messages"][0]["content"]


# ---------------------------------------------------------------------------
# Tests: normalization
# ---------------------------------------------------------------------------

class TestNormalization:
    async def test_unknown_used_item_dropped(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(choices=[
            {"id": "1", "text": "Light the torch", "action": "light it", "usedItem": "Torch"},
            {"id": "2", "text": "Drink the potion", "action": "drink", "usedItem": "Potion"},
            {"id": "3", "text": "Walk on", "action": "walk", "usedItem": "null"},
        ]))

        scene = await generator.generate_opening("x", CharacterState(inventory=["Torch"]))

        assert [c.used_item for c in scene.choices] == ["Torch", None, None]

    async def test_item_found_in_same_scene_is_usable(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(
            choices=[{"id": "1", "text": "Unlock the chest", "action": "unlock", "usedItem": "Brass Key"}],
            stat_changes={"itemFound": "Brass Key"},
        ))
        scene = await generator.generate_opening("x", CharacterState())
        assert scene.choices[0].used_item == "Brass Key"

    async def test_blank_and_duplicate_ids_renumbered(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(choices=[
            {"id": "a", "text": "One", "action": "one"},
            {"id": "a", "text": "Two", "action": "two"},
            {"id": "", "text": "Three", "action": "three"},
        ]))
        scene = await generator.generate_opening("x", CharacterState())
        ids = [c.id for c in scene.choices]
        assert ids[0] == "a"
        assert len(set(ids)) == 3
        assert all(ids)

    def test_renumber_avoids_existing_ids(self):
        choices = [DraftChoice(id="2", text="A"), DraftChoice(id="", text="B"), DraftChoice(id="2", text="C")]
        ids = [c.id for c in renumber_choices(choices)]
        assert ids[0] == "2"
        assert len(set(ids)) == 3

    async def test_blank_action_defaults_to_text(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(choices=[{"id": "1", "text": "Sing"}]))
        scene = await generator.generate_opening("x", CharacterState())
        assert scene.choices[0].action == "Sing"

    async def test_stat_changes_coerced(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(
            stat_changes={"health": "-10", "sanity": "lots", "mana": 5, "statusAdded": "Chilled"},
        ))
        scene = await generator.generate_opening("x", CharacterState())
        assert scene.stat_changes.health == -10
        assert scene.stat_changes.sanity is None
        assert scene.stat_changes.status_added == "Chilled"

    @pytest.mark.parametrize("raw", ["none", ["health", -5], 7])
    async def test_non_object_stat_changes_ignored(self, mock_provider, generator, raw):
        mock_provider.queue_schema_response(scene_payload(stat_changes=raw))
        scene = await generator.generate_opening("x", CharacterState())
        assert scene.title == "The Gate"
        assert scene.stat_changes is None

    def test_stat_changes_advertised_as_object(self):
        schema = SceneDraft.model_json_schema()
        assert schema["properties"]["statChanges"]["type"] == "object"

    async def test_no_stat_changes_is_none(self, mock_provider, generator):
        mock_provider.queue_schema_response(scene_payload(stat_changes={"mana": 5}))
        scene = await generator.generate_opening("x", CharacterState())
        assert scene.stat_changes is None


# ---------------------------------------------------------------------------
# Tests: failures
# ---------------------------------------------------------------------------

class TestFailures:
    @pytest.mark.parametrize("payload", [
        {k: v for k, v in scene_payload().items() if k != "imagePrompt"},
        {k: v for k, v in scene_payload().items() if k != "title"},
        scene_payload(choices=[]),
        scene_payload(description="   "),
        scene_payload(choices=[{"id": "1", "text": ""}]),
    ])
    async def test_missing_fields_are_malformed(self, mock_provider, generator, payload):
        mock_provider.queue_schema_response(payload)
        with pytest.raises(MalformedGeneration):
            await generator.generate_opening("x", CharacterState())

    async def test_provider_parse_error_is_malformed(self, mock_provider, generator):
        mock_provider.queue_schema_response(ValueError("Failed to parse JSON response"))
        with pytest.raises(MalformedGeneration) as exc_info:
            await generator.generate_opening("x", CharacterState())
        assert exc_info.value.kind == FailureKind.MALFORMED

    async def test_provider_error_is_classified(self, mock_provider, generator):
        mock_provider.queue_schema_response(_RateLimitError("slow down"))
        with pytest.raises(GenerationFailed) as exc_info:
            await generator.generate_next([_scene("A")], Choice(id="1", text="x", action="x"), CharacterState())
        assert exc_info.value.kind == FailureKind.QUOTA
