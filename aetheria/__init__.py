"""Aetheria Weaver - illustrated, narrated interactive fiction engine."""

__version__ = "0.3.0"
