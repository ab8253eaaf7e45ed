"""
Shared control-plane state: the registry of named mixers.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import InputConfig, MixerConfig, OutputConfig, OutputKind, State
from ..errors import AlreadyExists, NotFound
from ..mixer import Mixer

LOG = logging.getLogger(__name__)

MixerFactory = Callable[[MixerConfig], Mixer]


class OutputEntry(BaseModel):
    kind: OutputKind
    config: OutputConfig
    location: Optional[str] = None


class InputEntry(BaseModel):
    uri: str = Field(min_length=1)
    config: InputConfig


class MixerEntry(MixerConfig):
    """One item of the startup document's ``mixers`` list."""

    state: Optional[State] = None
    outputs: List[OutputEntry] = Field(default_factory=list)
    inputs: List[InputEntry] = Field(default_factory=list)

    def mixer_config(self) -> MixerConfig:
        return MixerConfig.model_validate(self.model_dump(include=set(MixerConfig.model_fields)))


class StartupDocument(BaseModel):
    mixers: List[MixerEntry] = Field(default_factory=list)


class SwitcherState:
    """
    Registry of mixers exposed through the control API.

    The registry lock only guards the mapping; each mixer serialises its own
    graph operations.
    """

    def __init__(self, mixer_factory: Optional[MixerFactory] = None) -> None:
        self._mixer_factory = mixer_factory or Mixer
        self._mixers: Dict[str, Mixer] = {}
        self._lock = threading.RLock()

    def mixer_names(self) -> List[str]:
        with self._lock:
            return list(self._mixers)

    def get(self, name: str) -> Mixer:
        with self._lock:
            mixer = self._mixers.get(name)
        if mixer is None:
            raise NotFound(f"Mixer '{name}' not found.")
        return mixer

    def create_mixer(self, config: MixerConfig) -> Mixer:
        with self._lock:
            if config.name in self._mixers:
                raise AlreadyExists(f"Mixer '{config.name}' already exists.")
            mixer = self._mixer_factory(config)
            self._mixers[config.name] = mixer
        return mixer

    def delete_mixer(self, name: str) -> None:
        with self._lock:
            mixer = self._mixers.pop(name, None)
        if mixer is None:
            raise NotFound(f"Mixer '{name}' not found.")
        mixer.close()

    def close(self) -> None:
        for name in self.mixer_names():
            try:
                self.delete_mixer(name)
            except Exception:  # pragma: no cover - shutdown path
                LOG.exception("Failed to close mixer '%s' during shutdown", name)

    def load(self, document: dict) -> None:
        """
        Build mixers from a startup document::

            mixers:
              - name: main
                state: playing
                outputs:
                  - kind: fake
                    config: {name: preview}
                inputs:
                  - uri: file:///media/intro.mp4
                    config: {name: intro}

        The whole document is validated before any mixer is built; a malformed
        entry raises :class:`pydantic.ValidationError`.
        """

        startup = StartupDocument.model_validate({"mixers": document.get("mixers") or []})
        for entry in startup.mixers:
            mixer = self.create_mixer(entry.mixer_config())
            for output in entry.outputs:
                mixer.add_output(output.kind, output.config, output.location)
            for source in entry.inputs:
                mixer.add_input(source.config, source.uri)
            if entry.state is not None:
                mixer.set_state(entry.state)
            LOG.info("Loaded mixer '%s' from configuration", mixer.name)
