from __future__ import annotations

import json

import pytest

from switcher.config import (
    AudioEncoder,
    AudioEncoderConfig,
    EncoderConfig,
    InputConfig,
    MixerConfig,
    Mux,
    OutputConfig,
    OutputKind,
    State,
    VideoConfig,
)
from switcher.errors import AlreadyExists, GraphError, NotFound
from switcher.graph.outputs import FakeOutput
from switcher.mixer import Mixer

VIDEO_CAPS = "video/x-raw,format=I420,width=640,height=480"
AUDIO_CAPS = "audio/x-raw,format=S16LE,rate=44100,channels=2"


@pytest.fixture
def mixer(fake_gst):
    instance = Mixer(MixerConfig(name="main"))
    yield instance
    instance.close()


def _base_names(mixer: Mixer):
    return [child.get_name() for child in mixer.pipeline.children]


def test_mixer_builds_background_layer(mixer, fake_gst) -> None:
    names = _base_names(mixer)
    assert names[0] == "mixer_main_video_src"
    assert mixer.video_src.get_property("is-live") is True
    assert mixer.audio_src.get_property("wave") == "silence"
    assert mixer.compositor.request_pads[0].get_property("zorder") == 0
    assert mixer.state() is State.NULL


def test_inputs_stack_above_background(mixer) -> None:
    first = mixer.add_input(InputConfig(name="one"), "file:///one.mp4")
    second = mixer.add_input(InputConfig(name="two"), "file:///two.mp4")

    assert first.video.zorder == 1
    assert second.video.zorder == 2
    assert [config.name for config in mixer.inputs()] == ["one", "two"]
    assert mixer.input_uri("two") == "file:///two.mp4"


def test_add_remove_leaves_no_orphans(mixer) -> None:
    baseline = _base_names(mixer)
    for name in ("a", "b", "c"):
        mixer.add_input(InputConfig(name=name, record=True), f"file:///{name}.mp4")
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="preview"))

    mixer.remove_input("b")
    assert [config.name for config in mixer.inputs()] == ["a", "c"]
    assert not any(name.startswith("input_b_") for name in _base_names(mixer))
    assert not any(name.startswith("output_record_b_") for name in _base_names(mixer))

    mixer.remove_input("a")
    mixer.remove_input("c")
    mixer.remove_output("preview")

    assert _base_names(mixer) == baseline
    # Only the background keeps a slot on each aggregator.
    assert len(mixer.compositor.request_pads) == 1
    assert len(mixer.audio_mixer.request_pads) == 1
    assert mixer.video_tee.request_pads == []
    assert mixer.audio_tee.request_pads == []


def test_duplicate_input_leaves_registry_unchanged(mixer) -> None:
    mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    children = _base_names(mixer)

    with pytest.raises(AlreadyExists):
        mixer.add_input(InputConfig(name="cam"), "file:///other.mp4")

    assert _base_names(mixer) == children
    assert mixer.input_uri("cam") == "file:///cam.mp4"


def test_duplicate_output_rejected(mixer) -> None:
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="preview"))
    with pytest.raises(AlreadyExists):
        mixer.add_output(OutputKind.AUTO, OutputConfig(name="preview"))
    assert [entry["kind"] for entry in mixer.outputs()] == ["fake"]


def test_unknown_names_raise_not_found(mixer) -> None:
    with pytest.raises(NotFound):
        mixer.remove_input("ghost")
    with pytest.raises(NotFound):
        mixer.remove_output("ghost")
    with pytest.raises(NotFound):
        mixer.set_input_alpha("ghost", 0.5)
    with pytest.raises(NotFound):
        mixer.input_config("ghost")


def test_incompatible_output_leaves_nothing_behind(mixer) -> None:
    baseline = _base_names(mixer)
    config = OutputConfig(
        name="bad",
        mux=Mux.FLV,
        encoder=EncoderConfig(audio=AudioEncoderConfig(encoder=AudioEncoder.VORBIS)),
    )
    with pytest.raises(GraphError):
        mixer.add_output(OutputKind.RTMP, config, "rtmp://example/live")

    assert _base_names(mixer) == baseline
    assert mixer.outputs() == []


def test_failed_output_state_is_rolled_back(mixer, monkeypatch) -> None:
    baseline = _base_names(mixer)

    def _refuse(self, state):
        raise GraphError("sink refused state")

    monkeypatch.setattr(FakeOutput, "set_state", _refuse)
    with pytest.raises(GraphError):
        mixer.add_output(OutputKind.FAKE, OutputConfig(name="preview"))

    assert _base_names(mixer) == baseline
    assert mixer.audio_tee.request_pads == []
    assert mixer.outputs() == []


def test_failed_input_link_is_rolled_back(mixer, fake_gst) -> None:
    baseline = _base_names(mixer)
    # The shared compositor leaves the pipeline, so the video chain cannot link.
    mixer.pipeline.remove(mixer.compositor)
    baseline.remove("mixer_main_compositor")

    with pytest.raises(GraphError):
        mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")

    assert _base_names(mixer) == baseline
    assert mixer.inputs() == []
    assert len(mixer.audio_mixer.request_pads) == 1


def test_outputs_fan_out_independently(mixer) -> None:
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="a"))
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="b"))
    mixer.set_state(State.PLAYING)

    mixer.remove_output("a")

    assert [entry["name"] for entry in mixer.outputs()] == ["b"]
    assert len(mixer.video_tee.request_pads) == 1
    assert mixer.video_tee.request_pads[0].is_linked()
    assert mixer.state() is State.PLAYING


def test_new_parts_follow_mixer_state(mixer, fake_gst) -> None:
    mixer.set_state(State.PLAYING)
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="preview"))
    mixer.add_input(InputConfig(name="cam", record=True), "file:///cam.mp4")

    playing = fake_gst.State.PLAYING
    assert mixer.pipeline.get_by_name("output_preview_video_sink").state is playing
    assert mixer.pipeline.get_by_name("input_cam_uridecodebin").state is playing
    assert mixer.pipeline.get_by_name("output_record_cam_sink").state is playing


def test_late_decoded_pads_link_into_running_mixer(mixer, fake_gst) -> None:
    mixer.set_state(State.PLAYING)
    mixer.add_input(InputConfig(name="cam", video=VideoConfig(alpha=0.5)), "file:///cam.mp4")
    decodebin = mixer.pipeline.get_by_name("input_cam_uridecodebin")
    convert = mixer.pipeline.get_by_name("input_cam_video_convert")
    convert.running_time = 12 * fake_gst.SECOND

    video = decodebin.add_decoded_pad(VIDEO_CAPS)
    audio = decodebin.add_decoded_pad(AUDIO_CAPS)

    assert video.is_linked() and audio.is_linked()
    assert video.get_offset() == 12 * fake_gst.SECOND
    assert mixer.compositor.request_pads[1].get_property("alpha") == 0.5


def test_input_setters_round_trip_through_mixer(mixer) -> None:
    mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    mixer.set_input_zorder("cam", 10)
    mixer.set_input_width("cam", 320)
    mixer.set_input_height("cam", 240)
    mixer.set_input_xpos("cam", 5)
    mixer.set_input_ypos("cam", 6)
    mixer.set_input_alpha("cam", 0.3)
    mixer.set_input_volume("cam", 2.0)

    config = mixer.input_config("cam")
    assert config.video.zorder == 10
    assert (config.video.width, config.video.height) == (320, 240)
    assert (config.video.xpos, config.video.ypos) == (5, 6)
    assert config.video.alpha == 0.3
    assert config.audio.volume == 2.0


def test_update_input_applies_every_change(mixer) -> None:
    mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    config = mixer.update_input("cam", {"xpos": 40, "ypos": 30, "volume": 0.5})

    assert (config.video.xpos, config.video.ypos) == (40, 30)
    assert config.audio.volume == 0.5
    assert mixer.compositor.request_pads[1].get_property("ypos") == 30


def test_update_input_reverts_applied_changes_on_failure(mixer) -> None:
    mixer.add_input(InputConfig(name="cam", video=VideoConfig(alpha=0.8)), "file:///cam.mp4")
    pad = mixer.compositor.request_pads[1]
    del pad._allowed["ypos"]

    with pytest.raises(GraphError):
        mixer.update_input("cam", {"width": 320, "xpos": 40, "ypos": 10, "alpha": 0.1})

    assert pad.get_property("xpos") == 0
    assert pad.get_property("width") == 1280
    assert pad.get_property("alpha") == 0.8
    config = mixer.input_config("cam")
    assert (config.video.width, config.video.xpos, config.video.alpha) == (1280, 0, 0.8)


def test_update_input_rejects_unknown_property(mixer) -> None:
    mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    with pytest.raises(GraphError):
        mixer.update_input("cam", {"rotation": 90})
    with pytest.raises(NotFound):
        mixer.update_input("ghost", {"xpos": 1})


def test_state_failure_raises_graph_error(mixer) -> None:
    mixer.pipeline.fail_state = True
    with pytest.raises(GraphError):
        mixer.set_state(State.PLAYING)
    assert mixer.state() is State.NULL
    mixer.pipeline.fail_state = False


def test_bus_monitor_runs_while_not_null(mixer) -> None:
    mixer.set_state(State.PAUSED)
    assert mixer._bus_thread is not None and mixer._bus_thread.is_alive()
    mixer.set_state(State.NULL)
    assert mixer._bus_thread is None


def test_bus_error_is_recorded(mixer, fake_gst) -> None:
    message = fake_gst.Message(fake_gst.MessageType.ERROR, mixer.video_src, "internal data stream error", "dbg")
    mixer._handle_bus_message(message)
    assert mixer.last_error == "internal data stream error (dbg)"


def test_describe_is_json_serialisable(mixer) -> None:
    mixer.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    mixer.add_output(OutputKind.FAKE, OutputConfig(name="preview"))

    snapshot = mixer.describe()

    json.dumps(snapshot, sort_keys=True)
    assert snapshot["inputs"][0]["config"]["video"]["zorder"] == 1
    assert snapshot["outputs"][0]["kind"] == "fake"


def test_generate_dot_lists_elements(mixer) -> None:
    dot = mixer.generate_dot()
    assert dot.startswith("digraph mixer_main")
    assert "mixer_main_compositor" in dot


def test_close_tears_everything_down(fake_gst) -> None:
    instance = Mixer(MixerConfig(name="temp"))
    instance.add_input(InputConfig(name="cam"), "file:///cam.mp4")
    instance.add_output(OutputKind.FAKE, OutputConfig(name="preview"))
    instance.set_state(State.PLAYING)

    instance.close()

    assert instance.inputs() == []
    assert instance.outputs() == []
    assert instance.state() is State.NULL
    assert instance._bus_thread is None
