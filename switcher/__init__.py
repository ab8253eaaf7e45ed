"""
Live audio/video switcher.

A :class:`~switcher.mixer.Mixer` composites any number of URI inputs into one
audio and one video stream and fans the result out to any number of outputs.
Inputs and outputs come and go while the pipeline keeps running.
"""

from __future__ import annotations

from .config import InputConfig, MixerConfig, OutputConfig, OutputKind, State
from .errors import AlreadyExists, GraphError, NotFound, SwitcherError, SystemFailure
from .mixer import Mixer

__version__ = "0.1.0"

__all__ = [
    "AlreadyExists",
    "GraphError",
    "InputConfig",
    "Mixer",
    "MixerConfig",
    "NotFound",
    "OutputConfig",
    "OutputKind",
    "State",
    "SwitcherError",
    "SystemFailure",
]
