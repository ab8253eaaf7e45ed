from __future__ import annotations

import pytest

from switcher.config import (
    AudioEncoder,
    AudioEncoderConfig,
    EncoderConfig,
    Mux,
    OutputConfig,
    OutputKind,
    State,
    VideoEncoder,
    VideoEncoderConfig,
)
from switcher.errors import GraphError
from switcher.graph import codecs
from switcher.graph.outputs import AutoOutput, FakeOutput, FileOutput, RTMPOutput, create_output
from switcher.utils import gst


@pytest.fixture
def tees(fake_gst):
    pipeline = fake_gst.Pipeline.new("mixer_test")
    audio_tee = gst.make_element("tee", "audio_tee")
    video_tee = gst.make_element("tee", "video_tee")
    gst.add_many(pipeline, audio_tee, video_tee)
    return pipeline, audio_tee, video_tee


def _config(name: str = "out", mux=None, audio=AudioEncoder.AAC, video=VideoEncoder.H264, **video_opts):
    return OutputConfig(
        name=name,
        mux=mux,
        encoder=EncoderConfig(
            audio=AudioEncoderConfig(encoder=audio),
            video=VideoEncoderConfig(encoder=video, **video_opts),
        ),
    )


@pytest.mark.parametrize(
    "kind, cls",
    [
        (OutputKind.AUTO, AutoOutput),
        (OutputKind.FAKE, FakeOutput),
    ],
)
def test_create_output_dispatches_on_kind(fake_gst, kind, cls) -> None:
    output = create_output(kind, _config())
    assert isinstance(output, cls)
    assert output.kind is kind
    assert output.name() == "out"
    assert output.location is None


def test_rtmp_output_builds_flv_chain(fake_gst) -> None:
    output = create_output(OutputKind.RTMP, _config(mux=Mux.FLV), "rtmp://live.example/app/key")

    assert isinstance(output, RTMPOutput)
    assert fake_gst.by_name("output_out_sink").factory == "rtmpsink"
    assert fake_gst.by_name("output_out_sink").get_property("location") == "rtmp://live.example/app/key"
    mux = fake_gst.by_name("output_out_mux")
    assert mux.factory == "flvmux"
    assert mux.get_property("streamable") is True
    assert fake_gst.by_name("output_out_video_encoder").get_property("tune") == "zerolatency"


@pytest.mark.parametrize("kind", [OutputKind.RTMP, OutputKind.FILE])
def test_encoded_outputs_require_location(fake_gst, kind) -> None:
    with pytest.raises(GraphError, match="location"):
        create_output(kind, _config(mux=Mux.FLV))


def test_encoded_outputs_require_mux(fake_gst) -> None:
    with pytest.raises(GraphError, match="requires a mux"):
        create_output(OutputKind.FILE, _config(), "/tmp/out.mkv")


def test_incompatible_mux_is_rejected_before_building(fake_gst) -> None:
    with pytest.raises(GraphError, match="cannot be muxed"):
        create_output(OutputKind.FILE, _config(mux=Mux.WEBM), "/tmp/out.webm")
    assert fake_gst.created == []


def test_file_output_links_and_unlinks_cleanly(tees, tmp_path) -> None:
    pipeline, audio_tee, video_tee = tees
    location = str(tmp_path / "out.mkv")
    output = create_output(
        OutputKind.FILE,
        _config(mux=Mux.MKV, audio=AudioEncoder.OPUS, video=VideoEncoder.VP9),
        location,
    )
    assert isinstance(output, FileOutput)

    output.link(pipeline, audio_tee, video_tee)
    assert len(audio_tee.request_pads) == 1
    assert len(video_tee.request_pads) == 1
    assert pipeline.get_by_name("output_out_sink").get_property("location") == location

    output.set_state(State.PLAYING)
    output.unlink()

    assert audio_tee.request_pads == []
    assert video_tee.request_pads == []
    assert pipeline.children == [audio_tee, video_tee]


def test_outputs_on_same_tees_are_independent(tees) -> None:
    pipeline, audio_tee, video_tee = tees
    first = create_output(OutputKind.FAKE, _config("first"))
    second = create_output(OutputKind.AUTO, _config("second"))
    first.link(pipeline, audio_tee, video_tee)
    second.link(pipeline, audio_tee, video_tee)
    second_pads = list(audio_tee.request_pads[1:]) + list(video_tee.request_pads[1:])

    first.unlink()

    assert audio_tee.request_pads + video_tee.request_pads == second_pads
    assert all(pad.is_linked() for pad in second_pads)
    assert pipeline.get_by_name("output_second_video_sink") is not None
    assert pipeline.get_by_name("output_first_video_sink") is None


def test_fake_output_does_not_sync(fake_gst) -> None:
    create_output(OutputKind.FAKE, _config())
    sink = fake_gst.by_name("output_out_audio_sink")
    assert sink.get_property("sync") is False
    assert sink.get_property("async") is False


def test_branch_queues_are_leaky(fake_gst) -> None:
    create_output(OutputKind.AUTO, _config())
    queue = fake_gst.by_name("output_out_video_queue")
    assert queue.get_property("leaky") == 2
    assert queue.get_property("max-size-time") == 2 * fake_gst.SECOND


def test_unlink_before_link_only_releases(fake_gst) -> None:
    output = create_output(OutputKind.FAKE, _config())
    output.unlink()


@pytest.mark.parametrize(
    "mux, audio, video, ok",
    [
        (Mux.FLV, AudioEncoder.AAC, VideoEncoder.H264, True),
        (Mux.FLV, AudioEncoder.OPUS, VideoEncoder.H264, False),
        (Mux.WEBM, AudioEncoder.VORBIS, VideoEncoder.VP8, True),
        (Mux.WEBM, AudioEncoder.OPUS, VideoEncoder.H264, False),
        (Mux.MKV, AudioEncoder.MP3, VideoEncoder.VP9, True),
        (Mux.MPEGTS, AudioEncoder.AAC, VideoEncoder.VP9, False),
    ],
)
def test_check_compatible(mux, audio, video, ok) -> None:
    encoder = EncoderConfig(
        audio=AudioEncoderConfig(encoder=audio), video=VideoEncoderConfig(encoder=video)
    )
    if ok:
        codecs.check_compatible(mux, encoder)
    else:
        with pytest.raises(GraphError):
            codecs.check_compatible(mux, encoder)


def test_video_encoder_profile_preset_and_speed(fake_gst) -> None:
    h264 = codecs.make_video_encoder(
        VideoEncoderConfig(encoder=VideoEncoder.H264, profile="high", preset="veryfast"), "enc"
    )
    assert [stage.factory for stage in h264] == ["x264enc", "capsfilter"]
    assert h264[0].get_property("speed-preset") == "veryfast"
    assert h264[1].get_property("caps").description == "video/x-h264,profile=high"

    vp8 = codecs.make_video_encoder(VideoEncoderConfig(encoder=VideoEncoder.VP8, speed=4), "vp8")
    assert len(vp8) == 1
    assert vp8[0].get_property("cpu-used") == 4
    assert vp8[0].get_property("deadline") == 1
