"""
Canonical string enumerations for Aetheria.

StrEnum values serialize as plain strings, so they can be stored in
snapshots and compared against raw literals without conversion.
"""

from enum import StrEnum


# ── Session lifecycle ──────────────────────────────────────────────────

class SessionState(StrEnum):
    """Main state of the session controller."""
    IDLE = "idle"                                     # No active game
    AWAITING_GENERATION = "awaiting_generation"       # Narrative request in flight
    AWAITING_ILLUSTRATION = "awaiting_illustration"   # Image request in flight
    ACTIVE = "active"                                 # Scene resolved, waiting on the player
    LISTENING = "listening"                           # Capturing voice input


BUSY_STATES = frozenset({
    SessionState.AWAITING_GENERATION,
    SessionState.AWAITING_ILLUSTRATION,
})


# ── Media failures ─────────────────────────────────────────────────────

class FailureKind(StrEnum):
    """Classified cause of a generation or media failure."""
    INPUT = "input"                         # Empty theme/action, rejected pre-flight
    ACCESS = "access"                       # Missing or rejected credentials
    QUOTA = "quota"                         # Rate limit / quota exhausted
    CAPABILITY_ABSENT = "capability_absent" # Engine, device or model not available
    TRANSIENT = "transient"                 # Network hiccup, 5xx, timeout
    MALFORMED = "malformed"                 # Output missing required structure
    UNKNOWN = "unknown"


# Kinds that move a pipeline to its next tier without logging noise
SILENT_FALLBACK = frozenset({FailureKind.QUOTA, FailureKind.CAPABILITY_ABSENT})


# ── Narration ──────────────────────────────────────────────────────────

class NarratorVoice(StrEnum):
    """Prebuilt narrator voices offered by the cloud voice model."""
    CHARON = "Charon"     # Deep / male
    KORE = "Kore"         # Female
    PUCK = "Puck"         # Playful / male
    ZEPHYR = "Zephyr"     # Calm / neutral
