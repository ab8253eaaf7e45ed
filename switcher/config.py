"""
Configuration records for mixers, inputs and outputs.

The records are plain pydantic models so they can be loaded from YAML, received
over the control API and cloned out of the runtime objects without sharing
mutable state.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Names end up in element names and URL paths.
NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class VideoFormat(str, Enum):
    """Raw pixel layouts accepted by the format-lock stage."""

    I420 = "I420"
    NV12 = "NV12"
    YUY2 = "YUY2"
    RGBA = "RGBA"
    BGRA = "BGRA"
    AYUV = "AYUV"


class AudioEncoder(str, Enum):
    AAC = "aac"
    OPUS = "opus"
    VORBIS = "vorbis"
    MP3 = "mp3"


class VideoEncoder(str, Enum):
    H264 = "h264"
    VP8 = "vp8"
    VP9 = "vp9"


class Mux(str, Enum):
    FLV = "flv"
    MP4 = "mp4"
    MKV = "mkv"
    WEBM = "webm"
    MPEGTS = "mpegts"


class OutputKind(str, Enum):
    """Supported downstream consumers."""

    RTMP = "rtmp"
    AUTO = "auto"
    FAKE = "fake"
    FILE = "file"


class State(str, Enum):
    """Playback states of the pipeline container."""

    NULL = "null"
    READY = "ready"
    PAUSED = "paused"
    PLAYING = "playing"


class VideoConfig(BaseModel):
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)
    framerate: int = Field(default=30, gt=0)
    format: VideoFormat = VideoFormat.AYUV
    xpos: int = 0
    ypos: int = 0
    # None lets the compositor pick the next free zorder on link.
    zorder: Optional[int] = Field(default=None, ge=0)
    alpha: float = Field(default=1.0, ge=0.0, le=1.0)
    repeat: bool = False


class AudioConfig(BaseModel):
    volume: float = Field(default=1.0, ge=0.0, le=10.0)


class AudioEncoderConfig(BaseModel):
    encoder: AudioEncoder = AudioEncoder.AAC


class VideoEncoderConfig(BaseModel):
    encoder: VideoEncoder = VideoEncoder.H264
    profile: Optional[str] = None
    preset: Optional[str] = None
    speed: Optional[int] = None


class EncoderConfig(BaseModel):
    audio: AudioEncoderConfig = Field(default_factory=AudioEncoderConfig)
    video: VideoEncoderConfig = Field(default_factory=VideoEncoderConfig)


class InputConfig(BaseModel):
    name: str = Field(min_length=1, pattern=NAME_PATTERN)
    video: VideoConfig = Field(default_factory=VideoConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    record: bool = False


class OutputConfig(BaseModel):
    name: str = Field(min_length=1, pattern=NAME_PATTERN)
    video: VideoConfig = Field(default_factory=VideoConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    mux: Optional[Mux] = None


class MixerConfig(BaseModel):
    name: str = Field(min_length=1, pattern=NAME_PATTERN)
    video: VideoConfig = Field(default_factory=VideoConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    background: str = "black"
