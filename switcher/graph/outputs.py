"""
Output branches hanging off the mixer's shared tees.

Every variant exposes the same five operations (``create``, ``name``,
``link``, ``unlink``, ``set_state``) and nothing else; :func:`create_output`
is the single dispatch point over :class:`~switcher.config.OutputKind`.

Each branch requests one src pad from the shared audio tee and one from the
shared video tee.  A tee hands out any number of those, so linking or
unlinking one output never touches its siblings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Type

from ..config import Mux, OutputConfig, OutputKind, State
from ..errors import GraphError
from ..utils import gst
from . import codecs

LOG = logging.getLogger(__name__)

# Leaky downstream: a stalled consumer drops its own buffers instead of
# back-pressuring the tee.
BRANCH_QUEUE_LEAKY = 2
BRANCH_QUEUE_MAX_TIME_NS = 2_000_000_000


class Output(Protocol):
    kind: OutputKind
    location: Optional[str]
    config: OutputConfig

    def name(self) -> str: ...

    def link(self, pipeline: Any, audio_tee: Any, video_tee: Any) -> None: ...

    def unlink(self) -> None: ...

    def set_state(self, state: State) -> None: ...


def _branch_queue(name: str):
    return gst.make_queue(name, max_time_ns=BRANCH_QUEUE_MAX_TIME_NS, leaky=BRANCH_QUEUE_LEAKY)


def _attach(pipeline: Any, elements: List[Any], chains: List[List[Any]], taps: List[tuple]) -> None:
    gst.add_many(pipeline, *elements)
    for chain in chains:
        gst.link_many(*chain)
    for tee, queue in taps:
        gst.link_many(tee, queue)


def _detach(pipeline: Optional[Any], queues: List[Any], elements: List[Any]) -> None:
    for queue in queues:
        gst.release_request_pad(queue)
    if pipeline is not None:
        gst.remove_many(pipeline, *elements)


@dataclass
class _EncodedBranch:
    """Audio and video encode chains feeding one muxer."""

    audio_queue: Any
    audio_convert: Any
    audio_resample: Any
    audio_encoder: Any
    video_queue: Any
    video_convert: Any
    video_encoder: List[Any]
    mux: Any

    @classmethod
    def build(cls, prefix: str, config: OutputConfig, **mux_properties: Any) -> "_EncodedBranch":
        if config.mux is None:
            raise GraphError(f"Output '{config.name}' requires a mux.")
        codecs.check_compatible(config.mux, config.encoder)
        return cls(
            audio_queue=_branch_queue(f"{prefix}_audio_queue"),
            audio_convert=gst.make_element("audioconvert", f"{prefix}_audio_convert"),
            audio_resample=gst.make_element("audioresample", f"{prefix}_audio_resample"),
            audio_encoder=codecs.make_audio_encoder(
                config.encoder.audio.encoder, f"{prefix}_audio_encoder"
            ),
            video_queue=_branch_queue(f"{prefix}_video_queue"),
            video_convert=gst.make_element("videoconvert", f"{prefix}_video_convert"),
            video_encoder=codecs.make_video_encoder(config.encoder.video, f"{prefix}_video_encoder"),
            mux=codecs.make_muxer(config.mux, f"{prefix}_mux", **mux_properties),
        )

    def elements(self) -> List[Any]:
        return [
            self.audio_queue,
            self.audio_convert,
            self.audio_resample,
            self.audio_encoder,
            self.video_queue,
            self.video_convert,
            *self.video_encoder,
            self.mux,
        ]

    def chains(self, sink: Any) -> List[List[Any]]:
        return [
            [self.audio_queue, self.audio_convert, self.audio_resample, self.audio_encoder, self.mux],
            [self.video_queue, self.video_convert, *self.video_encoder, self.mux],
            [self.mux, sink],
        ]


class RTMPOutput:
    """Encode, mux and push the mix to an RTMP endpoint."""

    kind = OutputKind.RTMP

    def __init__(self, config: OutputConfig, location: str, branch: _EncodedBranch, sink: Any) -> None:
        self.config = config
        self.location = location
        self._branch = branch
        self._sink = sink
        self._pipeline: Optional[Any] = None

    @classmethod
    def create(cls, config: OutputConfig, location: Optional[str] = None) -> "RTMPOutput":
        if not location:
            raise GraphError(f"RTMP output '{config.name}' requires a location.")
        prefix = f"output_{config.name}"
        streamable = {"streamable": True} if config.mux is Mux.FLV else {}
        branch = _EncodedBranch.build(prefix, config, **streamable)
        sink = gst.make_element("rtmpsink", f"{prefix}_sink", location=location)
        return cls(config, location, branch, sink)

    def name(self) -> str:
        return self.config.name

    def link(self, pipeline: Any, audio_tee: Any, video_tee: Any) -> None:
        self._pipeline = pipeline
        _attach(
            pipeline,
            [*self._branch.elements(), self._sink],
            self._branch.chains(self._sink),
            [(audio_tee, self._branch.audio_queue), (video_tee, self._branch.video_queue)],
        )

    def unlink(self) -> None:
        _detach(
            self._pipeline,
            [self._branch.audio_queue, self._branch.video_queue],
            [*self._branch.elements(), self._sink],
        )
        self._pipeline = None

    def set_state(self, state: State) -> None:
        gst.set_state_many(gst.to_gst_state(state), *self._branch.elements(), self._sink)


class FileOutput:
    """Encode and mux the stream into a local file."""

    kind = OutputKind.FILE

    def __init__(self, config: OutputConfig, location: str, branch: _EncodedBranch, sink: Any) -> None:
        self.config = config
        self.location = location
        self._branch = branch
        self._sink = sink
        self._pipeline: Optional[Any] = None

    @classmethod
    def create(cls, config: OutputConfig, location: Optional[str] = None) -> "FileOutput":
        if not location:
            raise GraphError(f"File output '{config.name}' requires a location.")
        prefix = f"output_{config.name}"
        branch = _EncodedBranch.build(prefix, config)
        sink = gst.make_element("filesink", f"{prefix}_sink", location=location)
        return cls(config, location, branch, sink)

    def name(self) -> str:
        return self.config.name

    def link(self, pipeline: Any, audio_tee: Any, video_tee: Any) -> None:
        self._pipeline = pipeline
        _attach(
            pipeline,
            [*self._branch.elements(), self._sink],
            self._branch.chains(self._sink),
            [(audio_tee, self._branch.audio_queue), (video_tee, self._branch.video_queue)],
        )
        LOG.info("Writing output '%s' to %s", self.config.name, self.location)

    def unlink(self) -> None:
        _detach(
            self._pipeline,
            [self._branch.audio_queue, self._branch.video_queue],
            [*self._branch.elements(), self._sink],
        )
        self._pipeline = None

    def set_state(self, state: State) -> None:
        gst.set_state_many(gst.to_gst_state(state), *self._branch.elements(), self._sink)


class AutoOutput:
    """Play the mix on the platform's default audio and video sinks."""

    kind = OutputKind.AUTO

    def __init__(self, config: OutputConfig, elements: Dict[str, Any]) -> None:
        self.config = config
        self.location: Optional[str] = None
        self._elements = elements
        self._pipeline: Optional[Any] = None

    @classmethod
    def create(cls, config: OutputConfig, location: Optional[str] = None) -> "AutoOutput":
        prefix = f"output_{config.name}"
        elements = {
            "audio_queue": _branch_queue(f"{prefix}_audio_queue"),
            "audio_convert": gst.make_element("audioconvert", f"{prefix}_audio_convert"),
            "audio_resample": gst.make_element("audioresample", f"{prefix}_audio_resample"),
            "audio_sink": gst.make_element("autoaudiosink", f"{prefix}_audio_sink"),
            "video_queue": _branch_queue(f"{prefix}_video_queue"),
            "video_convert": gst.make_element("videoconvert", f"{prefix}_video_convert"),
            "video_sink": gst.make_element("autovideosink", f"{prefix}_video_sink"),
        }
        return cls(config, elements)

    def name(self) -> str:
        return self.config.name

    def link(self, pipeline: Any, audio_tee: Any, video_tee: Any) -> None:
        e = self._elements
        self._pipeline = pipeline
        _attach(
            pipeline,
            list(e.values()),
            [
                [e["audio_queue"], e["audio_convert"], e["audio_resample"], e["audio_sink"]],
                [e["video_queue"], e["video_convert"], e["video_sink"]],
            ],
            [(audio_tee, e["audio_queue"]), (video_tee, e["video_queue"])],
        )

    def unlink(self) -> None:
        e = self._elements
        _detach(self._pipeline, [e["audio_queue"], e["video_queue"]], list(e.values()))
        self._pipeline = None

    def set_state(self, state: State) -> None:
        gst.set_state_many(gst.to_gst_state(state), *self._elements.values())


class FakeOutput:
    """Consume and discard the mix."""

    kind = OutputKind.FAKE

    def __init__(self, config: OutputConfig, elements: Dict[str, Any]) -> None:
        self.config = config
        self.location: Optional[str] = None
        self._elements = elements
        self._pipeline: Optional[Any] = None

    @classmethod
    def create(cls, config: OutputConfig, location: Optional[str] = None) -> "FakeOutput":
        prefix = f"output_{config.name}"
        elements = {
            "audio_queue": _branch_queue(f"{prefix}_audio_queue"),
            "audio_sink": gst.make_element("fakesink", f"{prefix}_audio_sink", sync=False, async_=False),
            "video_queue": _branch_queue(f"{prefix}_video_queue"),
            "video_sink": gst.make_element("fakesink", f"{prefix}_video_sink", sync=False, async_=False),
        }
        return cls(config, elements)

    def name(self) -> str:
        return self.config.name

    def link(self, pipeline: Any, audio_tee: Any, video_tee: Any) -> None:
        e = self._elements
        self._pipeline = pipeline
        _attach(
            pipeline,
            list(e.values()),
            [[e["audio_queue"], e["audio_sink"]], [e["video_queue"], e["video_sink"]]],
            [(audio_tee, e["audio_queue"]), (video_tee, e["video_queue"])],
        )

    def unlink(self) -> None:
        e = self._elements
        _detach(self._pipeline, [e["audio_queue"], e["video_queue"]], list(e.values()))
        self._pipeline = None

    def set_state(self, state: State) -> None:
        gst.set_state_many(gst.to_gst_state(state), *self._elements.values())


OUTPUT_TYPES: Dict[OutputKind, Type[Output]] = {
    OutputKind.RTMP: RTMPOutput,
    OutputKind.AUTO: AutoOutput,
    OutputKind.FAKE: FakeOutput,
    OutputKind.FILE: FileOutput,
}


def create_output(kind: OutputKind, config: OutputConfig, location: Optional[str] = None) -> Output:
    return OUTPUT_TYPES[OutputKind(kind)].create(config, location)
