"""Utility helpers for the switcher."""

from .logging import configure_logging

__all__ = ["configure_logging"]
