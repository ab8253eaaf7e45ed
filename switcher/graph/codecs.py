"""
Encoder and muxer declarations.

The switcher never encodes anything itself; it only decides which GStreamer
factory implements a logical codec or container and wires the elements
together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Tuple

from ..config import AudioEncoder, EncoderConfig, Mux, VideoEncoder, VideoEncoderConfig
from ..errors import GraphError
from ..utils import gst

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Codec:
    name: str
    factory: str
    description: str | None = None
    properties: Dict[str, Any] = field(default_factory=dict)


AUDIO_CODECS: Dict[AudioEncoder, Codec] = {
    AudioEncoder.AAC: Codec("aac", "avenc_aac", "AAC-LC via libav"),
    AudioEncoder.OPUS: Codec("opus", "opusenc"),
    AudioEncoder.VORBIS: Codec("vorbis", "vorbisenc"),
    AudioEncoder.MP3: Codec("mp3", "lamemp3enc"),
}

# vpx "deadline" 1 selects realtime encoding.
VIDEO_CODECS: Dict[VideoEncoder, Codec] = {
    VideoEncoder.H264: Codec("h264", "x264enc", properties={"tune": "zerolatency"}),
    VideoEncoder.VP8: Codec("vp8", "vp8enc", properties={"deadline": 1}),
    VideoEncoder.VP9: Codec("vp9", "vp9enc", properties={"deadline": 1}),
}

MUXERS: Dict[Mux, str] = {
    Mux.FLV: "flvmux",
    Mux.MP4: "mp4mux",
    Mux.MKV: "matroskamux",
    Mux.WEBM: "webmmux",
    Mux.MPEGTS: "mpegtsmux",
}

_ALL_AUDIO = frozenset(AudioEncoder)
_ALL_VIDEO = frozenset(VideoEncoder)

MUX_SUPPORT: Dict[Mux, Tuple[FrozenSet[AudioEncoder], FrozenSet[VideoEncoder]]] = {
    Mux.FLV: (frozenset({AudioEncoder.AAC, AudioEncoder.MP3}), frozenset({VideoEncoder.H264})),
    Mux.MP4: (
        frozenset({AudioEncoder.AAC, AudioEncoder.MP3, AudioEncoder.OPUS}),
        frozenset({VideoEncoder.H264, VideoEncoder.VP9}),
    ),
    Mux.MKV: (_ALL_AUDIO, _ALL_VIDEO),
    Mux.WEBM: (
        frozenset({AudioEncoder.OPUS, AudioEncoder.VORBIS}),
        frozenset({VideoEncoder.VP8, VideoEncoder.VP9}),
    ),
    Mux.MPEGTS: (
        frozenset({AudioEncoder.AAC, AudioEncoder.MP3, AudioEncoder.OPUS}),
        frozenset({VideoEncoder.H264}),
    ),
}


def check_compatible(mux: Mux, encoder: EncoderConfig) -> None:
    audio_ok, video_ok = MUX_SUPPORT[mux]
    if encoder.audio.encoder not in audio_ok:
        raise GraphError(
            f"Audio encoder '{encoder.audio.encoder.value}' cannot be muxed into '{mux.value}'."
        )
    if encoder.video.encoder not in video_ok:
        raise GraphError(
            f"Video encoder '{encoder.video.encoder.value}' cannot be muxed into '{mux.value}'."
        )


def make_audio_encoder(encoder: AudioEncoder, name: str):
    codec = AUDIO_CODECS[encoder]
    return gst.make_element(codec.factory, name, **codec.properties)


def make_video_encoder(config: VideoEncoderConfig, name: str) -> List[Any]:
    """
    Build the video encoder stage.

    Returns the encoder followed by a profile capsfilter when a profile was
    requested, so callers can link the list in order.
    """

    codec = VIDEO_CODECS[config.encoder]
    encoder = gst.make_element(codec.factory, name)
    for key, value in codec.properties.items():
        gst.set_property(encoder, key, value)

    if config.preset is not None:
        if config.encoder is VideoEncoder.H264:
            gst.set_property(encoder, "speed-preset", config.preset)
        else:
            LOG.debug("Preset '%s' ignored for %s", config.preset, codec.name)
    if config.speed is not None:
        if config.encoder is VideoEncoder.H264:
            LOG.debug("Speed %s ignored for %s", config.speed, codec.name)
        else:
            gst.set_property(encoder, "cpu-used", int(config.speed))

    stages = [encoder]
    if config.profile is not None:
        caps = gst.caps_from_string(f"video/x-{codec.name},profile={config.profile}")
        stages.append(gst.make_element("capsfilter", f"{name}_profile", caps=caps))
    return stages


def make_muxer(mux: Mux, name: str, **properties: Any):
    return gst.make_element(MUXERS[mux], name, **properties)
