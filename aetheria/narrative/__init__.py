"""Narrative generation: prompts, scene schema and draft normalization."""

from .generator import NarrativeGenerator, NarrativeStyle, SceneDraft

__all__ = ["NarrativeGenerator", "NarrativeStyle", "SceneDraft"]
