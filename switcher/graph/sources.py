"""
URI inputs.

An :class:`Input` owns one source subgraph::

    uridecodebin ─┬─ audioconvert ─ volume ─ audioresample ─ queue2 ─ tee ─ queue ──▶ audiomixer
                  └─ videoconvert ─ videoscale ─ videorate ─ capsfilter ─ queue2 ─ tee ─ queue2 ─▶ compositor

``uridecodebin`` only exposes its pads once the source's streams have been
typed, which happens on a streaming thread at some unpredictable point after
:meth:`Input.link`.  :class:`StreamAttacher` completes the connection from
there.  The per-input tees feed the optional recording branch.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from ..config import (
    AudioEncoder,
    AudioEncoderConfig,
    EncoderConfig,
    InputConfig,
    Mux,
    OutputConfig,
    State,
    VideoConfig,
    VideoEncoder,
    VideoEncoderConfig,
)
from ..errors import GraphError, SystemFailure
from ..utils import gst
from .outputs import FileOutput

LOG = logging.getLogger(__name__)

RECORDINGS_DIR_ENV = "SWITCHER_RECORDINGS_DIR"
DEFAULT_RECORDINGS_DIR = "recordings"
PROCESS_START_MS = int(time.time() * 1000)

RECORDING_ENCODER = EncoderConfig(
    audio=AudioEncoderConfig(encoder=AudioEncoder.VORBIS),
    video=VideoEncoderConfig(encoder=VideoEncoder.VP9),
)
RECORDING_MUX = Mux.MKV


def recording_path(input_name: str) -> Path:
    directory = Path(os.environ.get(RECORDINGS_DIR_ENV, DEFAULT_RECORDINGS_DIR)).expanduser()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SystemFailure(f"Cannot create recordings directory '{directory}': {exc}") from exc
    return directory / f"input_{input_name}_{PROCESS_START_MS}.mkv"


def video_caps(video: VideoConfig):
    return gst.caps_from_string(
        "video/x-raw,"
        f"format={video.format.value},"
        f"width={video.width},"
        f"height={video.height},"
        f"framerate={video.framerate}/1,"
        "colorimetry=sRGB"
    )


class StreamAttacher:
    """
    ``pad-added`` handler for one input's ``uridecodebin``.

    Runs on a GStreamer streaming thread.  It only holds the owning input's
    entry elements and a config accessor, never the mixer or other inputs, and
    it never raises: failures are logged and leave that media kind unlinked.
    """

    def __init__(
        self,
        input_name: str,
        audio_convert: Any,
        video_convert: Any,
        video_queue: Any,
        video_config: Callable[[], VideoConfig],
    ) -> None:
        self.input_name = input_name
        self._audio_convert = audio_convert
        self._video_convert = video_convert
        self._video_queue = video_queue
        self._video_config = video_config
        self.detached = False

    def __call__(self, decodebin: Any, pad: Any) -> None:
        if self.detached:
            LOG.debug("Input '%s' is unlinked; ignoring new pad %s", self.input_name, pad.get_name())
            return

        LOG.debug("Received new pad %s from %s", pad.get_name(), decodebin.get_name())
        try:
            media_type = gst.pad_media_type(pad)
            if media_type is None:
                LOG.warning("Input '%s': pad %s has no caps", self.input_name, pad.get_name())
            elif media_type.startswith("audio/x-raw"):
                self._attach(pad, self._audio_convert, media_type)
            elif media_type.startswith("video/x-raw"):
                self._attach(pad, self._video_convert, media_type, restore_placement=True)
            else:
                LOG.debug("Input '%s': ignoring pad of type %s", self.input_name, media_type)
        except GraphError as exc:
            LOG.warning("Input '%s': failed to attach pad %s: %s", self.input_name, pad.get_name(), exc)

    def _attach(self, pad: Any, target: Any, media_type: str, *, restore_placement: bool = False) -> None:
        sink_pad = gst.static_pad(target, "sink")
        if sink_pad.is_linked():
            LOG.info("Input '%s': %s already linked; ignoring.", self.input_name, media_type)
            return

        # Shift the stream so its first buffer lands at "now" on the shared
        # timeline instead of racing to catch up from running time zero.
        pad.set_offset(gst.running_time(self._video_convert))

        if restore_placement:
            self._restore_placement()

        gst.link_pads(pad, sink_pad)
        LOG.info("Input '%s': linked %s stream", self.input_name, media_type)

    def _restore_placement(self) -> None:
        queue_pad = self._video_queue.get_static_pad("src")
        if queue_pad is None:
            LOG.warning("Input '%s': failed to retrieve src pad for video", self.input_name)
            return
        if not queue_pad.is_linked():
            return
        compositor_pad = queue_pad.get_peer()
        if compositor_pad is None:
            LOG.warning("Input '%s': failed to retrieve compositor pad for video", self.input_name)
            return

        video = self._video_config()
        placement = {
            "alpha": video.alpha,
            "xpos": video.xpos,
            "ypos": video.ypos,
            "repeat-after-eos": video.repeat,
        }
        if video.zorder is not None:
            placement["zorder"] = video.zorder

        for prop, value in placement.items():
            try:
                previous = gst.get_property(compositor_pad, prop)
                gst.set_property(compositor_pad, prop, value)
            except GraphError as exc:
                LOG.debug("Input '%s': could not restore %s: %s", self.input_name, prop, exc)
                continue
            if previous != value:
                LOG.debug("Input '%s': restored %s %r -> %r", self.input_name, prop, previous, value)


class Input:
    """One URI source, its conversion chain, tees and optional recording."""

    def __init__(self, config: InputConfig, uri: str) -> None:
        self._config = config.model_copy(deep=True)
        self._config_lock = threading.Lock()
        self.uri = uri
        self._pipeline: Optional[Any] = None

        prefix = f"input_{config.name}"
        video = config.video

        self.source = gst.make_element("uridecodebin", f"{prefix}_uridecodebin", uri=uri)

        self.video_convert = gst.make_element("videoconvert", f"{prefix}_video_convert")
        self.video_scale = gst.make_element("videoscale", f"{prefix}_video_scale")
        self.video_rate = gst.make_element("videorate", f"{prefix}_video_rate")
        self.video_capsfilter = gst.make_element(
            "capsfilter", f"{prefix}_video_capsfilter", caps=video_caps(video)
        )
        self.video_tee_queue = gst.make_element("queue2", f"{prefix}_video_tee_queue")
        self.video_tee = gst.make_element("tee", f"{prefix}_video_tee", allow_not_linked=True)
        self.video_queue = gst.make_element("queue2", f"{prefix}_video_queue")

        self.audio_convert = gst.make_element("audioconvert", f"{prefix}_audio_convert")
        self.audio_volume = gst.make_element(
            "volume", f"{prefix}_audio_volume", volume=float(config.audio.volume)
        )
        self.audio_resample = gst.make_element("audioresample", f"{prefix}_audio_resample")
        self.audio_tee_queue = gst.make_element("queue2", f"{prefix}_audio_tee_queue")
        self.audio_tee = gst.make_element("tee", f"{prefix}_audio_tee", allow_not_linked=True)
        self.audio_queue = gst.make_element("queue", f"{prefix}_audio_queue")

        self._attacher = StreamAttacher(
            config.name,
            self.audio_convert,
            self.video_convert,
            self.video_queue,
            self._video_snapshot,
        )
        self._pad_added_handler: Optional[int] = self.source.connect("pad-added", self._attacher)

        self._recording: Optional[FileOutput] = None
        if config.record:
            recording_config = OutputConfig(
                name=f"record_{config.name}",
                video=config.video.model_copy(deep=True),
                audio=config.audio.model_copy(deep=True),
                encoder=RECORDING_ENCODER.model_copy(deep=True),
                mux=RECORDING_MUX,
            )
            self._recording = FileOutput.create(recording_config, str(recording_path(config.name)))

    @classmethod
    def create(cls, config: InputConfig, uri: str) -> "Input":
        return cls(config, uri)

    # ------------------------------------------------------------------ state

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def location(self) -> str:
        return self.uri

    @property
    def linked(self) -> bool:
        return self._pipeline is not None

    @property
    def recording(self) -> Optional[FileOutput]:
        return self._recording

    def config(self) -> InputConfig:
        with self._config_lock:
            return self._config.model_copy(deep=True)

    def _video_snapshot(self) -> VideoConfig:
        with self._config_lock:
            return self._config.video.model_copy(deep=True)

    def _pre_sync_elements(self) -> List[Any]:
        return [self.audio_tee_queue, self.audio_tee, self.video_tee_queue, self.video_tee]

    def _chain_elements(self) -> List[Any]:
        return [
            self.source,
            self.audio_convert,
            self.audio_volume,
            self.audio_resample,
            self.audio_queue,
            self.video_convert,
            self.video_scale,
            self.video_rate,
            self.video_capsfilter,
            self.video_queue,
        ]

    def elements(self) -> List[Any]:
        return [*self._chain_elements(), *self._pre_sync_elements()]

    # -------------------------------------------------------------- lifecycle

    def link(self, pipeline: Any, audio_mixer: Any, compositor: Any) -> None:
        self._pipeline = pipeline
        gst.add_many(pipeline, *self._pre_sync_elements())

        if self._recording is not None:
            self._recording.link(pipeline, self.audio_tee, self.video_tee)

        gst.add_many(pipeline, *self._chain_elements())

        gst.link_many(
            self.audio_convert,
            self.audio_volume,
            self.audio_resample,
            self.audio_tee_queue,
            self.audio_tee,
            self.audio_queue,
            audio_mixer,
        )
        gst.link_many(
            self.video_convert,
            self.video_scale,
            self.video_rate,
            self.video_capsfilter,
            self.video_tee_queue,
            self.video_tee,
            self.video_queue,
            compositor,
        )

        queue_pad = gst.static_pad(self.video_queue, "src")
        video = self._video_snapshot()
        if video.zorder is not None:
            gst.set_peer_pad_property(queue_pad, "zorder", video.zorder)
        gst.set_peer_pad_property(queue_pad, "alpha", float(video.alpha))
        gst.set_peer_pad_property(queue_pad, "xpos", int(video.xpos))
        gst.set_peer_pad_property(queue_pad, "ypos", int(video.ypos))
        gst.set_peer_pad_property(queue_pad, "repeat-after-eos", bool(video.repeat))

        # Without a requested zorder the compositor picks one on pad request.
        # Keep it so a temporary zorder change can be reverted later.
        zorder = gst.get_peer_pad_property(queue_pad, "zorder")
        try:
            zorder = int(zorder)
        except (TypeError, ValueError) as exc:
            raise GraphError(f"Compositor returned invalid zorder {zorder!r} for '{self.name}'.") from exc
        with self._config_lock:
            self._config.video.zorder = zorder
        LOG.debug("Input '%s' linked with zorder %d", self.name, zorder)

    def unlink(self) -> None:
        self._attacher.detached = True
        if self._pad_added_handler is not None:
            self.source.disconnect(self._pad_added_handler)
            self._pad_added_handler = None

        # Aggregator slots first, then the branches of this input's own tees.
        gst.release_request_pad(self.audio_queue, "src")
        gst.release_request_pad(self.video_queue, "src")
        gst.release_request_pad(self.audio_queue)
        gst.release_request_pad(self.video_queue)

        if self._recording is not None:
            self._recording.unlink()

        if self._pipeline is not None:
            gst.remove_many(self._pipeline, *self.elements())
            self._pipeline = None

    def set_state(self, state: State) -> None:
        gst.set_state_many(gst.to_gst_state(state), *self.elements())

    # ------------------------------------------------------------- properties

    def _compositor_pad(self):
        return gst.static_pad(self.video_queue, "src")

    def set_volume(self, volume: float, update_config: bool = True) -> None:
        gst.set_property(self.audio_volume, "volume", float(volume))
        if update_config:
            with self._config_lock:
                self._config.audio.volume = float(volume)

    def set_zorder(self, zorder: int, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "zorder", int(zorder))
        if update_config:
            with self._config_lock:
                self._config.video.zorder = int(zorder)

    def set_width(self, width: int, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "width", int(width))
        if update_config:
            with self._config_lock:
                self._config.video.width = int(width)

    def set_height(self, height: int, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "height", int(height))
        if update_config:
            with self._config_lock:
                self._config.video.height = int(height)

    def set_xpos(self, xpos: int, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "xpos", int(xpos))
        if update_config:
            with self._config_lock:
                self._config.video.xpos = int(xpos)

    def set_ypos(self, ypos: int, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "ypos", int(ypos))
        if update_config:
            with self._config_lock:
                self._config.video.ypos = int(ypos)

    def set_alpha(self, alpha: float, update_config: bool = True) -> None:
        gst.set_peer_pad_property(self._compositor_pad(), "alpha", float(alpha))
        if update_config:
            with self._config_lock:
                self._config.video.alpha = float(alpha)
