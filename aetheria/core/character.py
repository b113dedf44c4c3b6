"""Character state engine.

Pure functions over ``CharacterState``: every call returns a new model and
none of them raise on odd generation output. The narrative generator emits
free text, so a delta may arrive as a ``StatDelta``, a raw dict with either
camelCase or snake_case keys, or nothing at all.
"""

import logging
from typing import Any

from .models import MAX_SANITY, CharacterState, StatDelta

logger = logging.getLogger(__name__)

# Generation output uses these to mean "no item"
NO_ITEM_SENTINELS = frozenset({"null", "none"})

_NUMERIC_KEYS = {
    "health": "health",
    "sanity": "sanity",
    "experience": "experience",
}
_TEXT_KEYS = {
    "itemFound": "item_found",
    "item_found": "item_found",
    "statusAdded": "status_added",
    "status_added": "status_added",
}


def new_character() -> CharacterState:
    """Initial character for a fresh session."""
    return CharacterState()


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            return int(float(value.strip()))
    except (ValueError, OverflowError):
        return None
    return None


def coerce_delta(raw: StatDelta | dict | None) -> StatDelta:
    """Build a StatDelta from whatever the generator produced."""
    if raw is None:
        return StatDelta()
    if isinstance(raw, StatDelta):
        return raw
    if not isinstance(raw, dict):
        logger.debug(f"Ignoring stat delta of type {type(raw).__name__}")
        return StatDelta()

    fields: dict[str, Any] = {}
    for key, name in _NUMERIC_KEYS.items():
        if key in raw:
            value = _as_int(raw[key])
            if value is not None:
                fields[name] = value
    for key, name in _TEXT_KEYS.items():
        value = raw.get(key)
        if isinstance(value, str) and name not in fields:
            fields[name] = value
    return StatDelta(**fields)


def is_real_item(name: str | None) -> bool:
    """True when ``name`` names an actual item rather than a "no item" sentinel."""
    if name is None:
        return False
    stripped = name.strip()
    return bool(stripped) and stripped.lower() not in NO_ITEM_SENTINELS


def apply_delta(state: CharacterState, delta: StatDelta | dict | None) -> CharacterState:
    """Apply one scene's stat changes and return the new character state."""
    change = coerce_delta(delta)

    health = state.health
    if change.health:
        health = _clamp(health + change.health, 0, state.max_health)

    sanity = state.sanity
    if change.sanity:
        sanity = _clamp(sanity + change.sanity, 0, MAX_SANITY)

    experience = state.experience + max(change.experience or 0, 0)

    inventory = list(state.inventory)
    if is_real_item(change.item_found):
        inventory.append(change.item_found.strip())

    status_effects = list(state.status_effects)
    if change.status_added is not None:
        status_effects.append(change.status_added)

    return state.model_copy(update={
        "health": health,
        "sanity": sanity,
        "experience": experience,
        "inventory": inventory,
        "status_effects": status_effects,
    })


def consume_item(state: CharacterState, name: str) -> CharacterState:
    """Remove the first inventory entry named exactly ``name``."""
    if name not in state.inventory:
        logger.debug("Item '%s' not in inventory; nothing consumed", name)
        return state
    inventory = list(state.inventory)
    inventory.remove(name)  # list.remove drops the first match only
    return state.model_copy(update={"inventory": inventory})


def summarize_character(state: CharacterState) -> str:
    """One-line character summary for generation requests."""
    inventory = ", ".join(state.inventory) if state.inventory else "nothing"
    effects = ", ".join(state.status_effects) if state.status_effects else "none"
    return (
        f"Health {state.health}/{state.max_health}, Sanity {state.sanity}/{MAX_SANITY}, "
        f"Experience {state.experience}. Carrying: {inventory}. Status effects: {effects}."
    )
