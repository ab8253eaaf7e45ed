"""
Mixer: the pipeline container shared by all inputs and outputs.

The mixer owns one GstPipeline with a live background layer feeding the
shared compositor and audiomixer.  Inputs link into those two aggregators;
outputs hang off the tees behind them::

    videotestsrc ─ capsfilter ─┐
    input_* video queues ──────┴─ compositor ─ capsfilter ─ tee ─▶ outputs
    audiotestsrc ──────────────┐
    input_* audio queues ──────┴─ audiomixer ─ volume ─ capsfilter ─ tee ─▶ outputs

Control operations are serialised by a per-mixer lock.  The inputs'
``pad-added`` handlers run on streaming threads and never take that lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .config import InputConfig, MixerConfig, OutputConfig, OutputKind, State
from .errors import AlreadyExists, GraphError, NotFound
from .graph.outputs import Output, create_output
from .graph.sources import Input, video_caps
from .utils import gst
from .utils.gst import Gst

LOG = logging.getLogger(__name__)

BUS_POLL_INTERVAL_NS = 100_000_000  # 100ms
AUDIO_CAPS = "audio/x-raw,format=F32LE,rate=48000,channels=2,layout=interleaved"

# Runtime-adjustable input properties, in the order a PATCH applies them.
INPUT_PROPERTIES = ("volume", "zorder", "width", "height", "xpos", "ypos", "alpha")


def _stored_value(config: InputConfig, prop: str) -> Any:
    if prop == "volume":
        return config.audio.volume
    return getattr(config.video, prop)


class Mixer:
    """
    Live switcher facade.

    Inputs and outputs can be added and removed in any pipeline state without
    interrupting the others.
    """

    def __init__(self, config: MixerConfig) -> None:
        gst.require_gstreamer()
        self.config = config.model_copy(deep=True)
        self._lock = threading.RLock()
        self._state = State.NULL
        self._inputs: Dict[str, Input] = {}
        self._outputs: Dict[str, Output] = {}
        self._bus_thread: Optional[threading.Thread] = None
        self._bus_stop = threading.Event()
        self._last_error: Optional[str] = None

        prefix = f"mixer_{config.name}"
        pipeline = Gst.Pipeline.new(prefix)
        if pipeline is None:
            raise GraphError("Failed to create GstPipeline instance.")
        self.pipeline = pipeline

        self.video_src = gst.make_element(
            "videotestsrc", f"{prefix}_video_src", is_live=True, pattern=config.background
        )
        self.video_src_capsfilter = gst.make_element(
            "capsfilter", f"{prefix}_video_src_capsfilter", caps=video_caps(config.video)
        )
        self.compositor = gst.make_element("compositor", f"{prefix}_compositor", background="black")
        self.video_capsfilter = gst.make_element(
            "capsfilter", f"{prefix}_video_capsfilter", caps=video_caps(config.video)
        )
        self.video_tee = gst.make_element("tee", f"{prefix}_video_tee", allow_not_linked=True)

        self.audio_src = gst.make_element(
            "audiotestsrc", f"{prefix}_audio_src", is_live=True, wave="silence"
        )
        self.audio_mixer = gst.make_element("audiomixer", f"{prefix}_audio_mixer")
        self.audio_volume = gst.make_element(
            "volume", f"{prefix}_audio_volume", volume=float(config.audio.volume)
        )
        self.audio_capsfilter = gst.make_element(
            "capsfilter", f"{prefix}_audio_capsfilter", caps=gst.caps_from_string(AUDIO_CAPS)
        )
        self.audio_tee = gst.make_element("tee", f"{prefix}_audio_tee", allow_not_linked=True)

        gst.add_many(
            pipeline,
            self.video_src,
            self.video_src_capsfilter,
            self.compositor,
            self.video_capsfilter,
            self.video_tee,
            self.audio_src,
            self.audio_mixer,
            self.audio_volume,
            self.audio_capsfilter,
            self.audio_tee,
        )
        gst.link_many(
            self.video_src, self.video_src_capsfilter, self.compositor, self.video_capsfilter, self.video_tee
        )
        gst.link_many(
            self.audio_src, self.audio_mixer, self.audio_volume, self.audio_capsfilter, self.audio_tee
        )

        # Background stays underneath every input.
        background_pad = gst.static_pad(self.video_src_capsfilter, "src")
        gst.set_peer_pad_property(background_pad, "zorder", 0)
        LOG.info("Mixer '%s' created (%dx%d@%d)", config.name, config.video.width,
                 config.video.height, config.video.framerate)

    # --------------------------------------------------------------------- API

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def state(self) -> State:
        return self._state

    def set_state(self, state: State) -> None:
        state = State(state)
        with self._lock:
            result = self.pipeline.set_state(gst.to_gst_state(state))
            if result == Gst.StateChangeReturn.FAILURE:
                raise GraphError(f"Mixer '{self.name}' failed to change state to {state.value}.")
            self._state = state
            if state is State.NULL:
                self._stop_bus_monitor()
            else:
                self._start_bus_monitor()
        LOG.info("Mixer '%s' state -> %s", self.name, state.value)

    def add_input(self, config: InputConfig, uri: str) -> InputConfig:
        with self._lock:
            if config.name in self._inputs:
                raise AlreadyExists(f"Input '{config.name}' already exists.")
            source = Input.create(config, uri)
            try:
                source.link(self.pipeline, self.audio_mixer, self.compositor)
                source.set_state(self._state)
                if source.recording is not None:
                    source.recording.set_state(self._state)
            except GraphError:
                self._rollback(source.unlink, "input", config.name)
                raise
            self._inputs[config.name] = source
        LOG.info("Added input '%s' from %s", config.name, uri)
        return source.config()

    def remove_input(self, name: str) -> None:
        with self._lock:
            source = self._get_input(name)
            source.unlink()
            del self._inputs[name]
        LOG.info("Removed input '%s'", name)

    def add_output(
        self, kind: OutputKind, config: OutputConfig, location: Optional[str] = None
    ) -> None:
        with self._lock:
            if config.name in self._outputs:
                raise AlreadyExists(f"Output '{config.name}' already exists.")
            output = create_output(kind, config, location)
            try:
                output.link(self.pipeline, self.audio_tee, self.video_tee)
                output.set_state(self._state)
            except GraphError:
                self._rollback(output.unlink, "output", config.name)
                raise
            self._outputs[config.name] = output
        LOG.info("Added %s output '%s'", OutputKind(kind).value, config.name)

    def remove_output(self, name: str) -> None:
        with self._lock:
            output = self._outputs.get(name)
            if output is None:
                raise NotFound(f"Output '{name}' not found.")
            output.unlink()
            del self._outputs[name]
        LOG.info("Removed output '%s'", name)

    def input_config(self, name: str) -> InputConfig:
        with self._lock:
            return self._get_input(name).config()

    def inputs(self) -> List[InputConfig]:
        with self._lock:
            return [source.config() for source in self._inputs.values()]

    def input_uri(self, name: str) -> str:
        with self._lock:
            return self._get_input(name).uri

    def outputs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {
                    "name": output.name(),
                    "kind": output.kind.value,
                    "location": output.location,
                    "config": output.config.model_dump(mode="json"),
                }
                for output in self._outputs.values()
            ]

    def set_input_volume(self, name: str, volume: float, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_volume(volume, update_config)

    def set_input_zorder(self, name: str, zorder: int, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_zorder(zorder, update_config)

    def set_input_width(self, name: str, width: int, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_width(width, update_config)

    def set_input_height(self, name: str, height: int, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_height(height, update_config)

    def set_input_xpos(self, name: str, xpos: int, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_xpos(xpos, update_config)

    def set_input_ypos(self, name: str, ypos: int, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_ypos(ypos, update_config)

    def set_input_alpha(self, name: str, alpha: float, update_config: bool = True) -> None:
        with self._lock:
            self._get_input(name).set_alpha(alpha, update_config)

    def update_input(
        self, name: str, changes: Dict[str, Any], update_config: bool = True
    ) -> InputConfig:
        """
        Apply several placement/volume changes to one input as a unit.

        If any property is refused, the ones already applied are put back to
        their stored values and the error is re-raised.
        """

        with self._lock:
            source = self._get_input(name)
            unknown = set(changes) - set(INPUT_PROPERTIES)
            if unknown:
                raise GraphError(f"Unknown input properties: {', '.join(sorted(unknown))}.")
            before = source.config()
            applied: List[str] = []
            try:
                for prop, value in changes.items():
                    getattr(source, f"set_{prop}")(value, update_config)
                    applied.append(prop)
            except GraphError:
                for prop in reversed(applied):
                    previous = _stored_value(before, prop)
                    if previous is not None:
                        getattr(source, f"set_{prop}")(previous, True)
                LOG.warning("Update of input '%s' rejected; reverted %s", name, applied or "nothing")
                raise
            return source.config()

    def describe(self) -> Dict[str, object]:
        """
        Return a serialisable snapshot of the mixer.
        """

        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "config": self.config.model_dump(mode="json"),
                "inputs": [
                    {"uri": source.uri, "config": source.config().model_dump(mode="json")}
                    for source in self._inputs.values()
                ],
                "outputs": self.outputs(),
                "last_error": self._last_error,
            }

    def generate_dot(self) -> str:
        return Gst.debug_bin_to_dot_data(self.pipeline, Gst.DebugGraphDetails.ALL)

    def close(self) -> None:
        """Stop the pipeline and tear down every input and output."""

        with self._lock:
            self.set_state(State.NULL)
            for name in list(self._inputs):
                self.remove_input(name)
            for name in list(self._outputs):
                self.remove_output(name)
        LOG.info("Mixer '%s' closed", self.name)

    # ----------------------------------------------------------------- plumbing

    def _get_input(self, name: str) -> Input:
        source = self._inputs.get(name)
        if source is None:
            raise NotFound(f"Input '{name}' not found.")
        return source

    def _rollback(self, unlink, kind: str, name: str) -> None:
        try:
            unlink()
        except GraphError:
            LOG.exception("Failed to roll back partially linked %s '%s'", kind, name)

    def _start_bus_monitor(self) -> None:
        if self._bus_thread and self._bus_thread.is_alive():
            return

        bus = self.pipeline.get_bus()
        if not bus:
            LOG.warning("Pipeline bus is not available; skipping bus monitoring.")
            return

        self._bus_stop.clear()
        mask = (
            Gst.MessageType.ERROR
            | Gst.MessageType.EOS
            | Gst.MessageType.WARNING
            | Gst.MessageType.STATE_CHANGED
        )

        def _loop() -> None:
            while not self._bus_stop.is_set():
                message = bus.timed_pop_filtered(BUS_POLL_INTERVAL_NS, mask)
                if message is None:
                    continue
                self._handle_bus_message(message)

        thread = threading.Thread(target=_loop, name=f"switcher-bus-{self.name}", daemon=True)
        thread.start()
        self._bus_thread = thread

    def _stop_bus_monitor(self) -> None:
        self._bus_stop.set()
        thread = self._bus_thread
        if thread and thread.is_alive() and threading.current_thread() is not thread:
            thread.join(timeout=1.0)
        self._bus_thread = None

    def _handle_bus_message(self, message: Any) -> None:
        msg_type = message.type
        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            self._last_error = f"{err} ({debug})"
            LOG.error("Mixer '%s' error from %s: %s", self.name, message.src.get_name(), self._last_error)
        elif msg_type == Gst.MessageType.WARNING:
            warn, debug = message.parse_warning()
            LOG.warning("Mixer '%s' warning from %s: %s (%s)", self.name, message.src.get_name(), warn, debug)
        elif msg_type == Gst.MessageType.EOS:
            LOG.info("Mixer '%s' reached EOS", self.name)
        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src != self.pipeline:
                return
            _old, new, _pending = message.parse_state_changed()
            LOG.debug("Mixer '%s' pipeline state changed to %s", self.name,
                      Gst.Element.state_get_name(new))

