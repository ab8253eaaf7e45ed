"""
GStreamer helpers shared by inputs, outputs and the mixer.

PyGObject is imported here and nowhere else.  When it is not installed the
package still imports; every helper that needs the runtime raises
:class:`~switcher.errors.SystemFailure` instead.

All engine rejections (missing factories, refused properties, failed links or
state changes) surface as :class:`~switcher.errors.GraphError`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from ..config import State
from ..errors import GraphError, SystemFailure

try:  # pragma: no cover - availability depends on host environment
    import gi  # type: ignore

    gi.require_version("Gst", "1.0")
    from gi.repository import Gst  # type: ignore
except (ImportError, ValueError) as exc:  # pragma: no cover
    Gst = None  # type: ignore[assignment]
    _GST_IMPORT_ERROR: Optional[BaseException] = exc
else:  # pragma: no cover - executed only when GStreamer is present
    _GST_IMPORT_ERROR = None

LOG = logging.getLogger(__name__)

_INIT_LOCK = threading.Lock()
_GST_INITIALISED = False


def is_available() -> bool:
    return Gst is not None


def require_gstreamer() -> None:
    """Initialise GStreamer once, raising ``SystemFailure`` when it is missing."""

    global _GST_INITIALISED
    if Gst is None:
        raise SystemFailure(
            "GStreamer runtime is not available. Install PyGObject and GStreamer 1.20+."
        ) from _GST_IMPORT_ERROR
    with _INIT_LOCK:
        if _GST_INITIALISED:
            return
        Gst.init(None)
        _GST_INITIALISED = True
        LOG.debug("GStreamer initialised")


def describe(obj: Any) -> str:
    get_name = getattr(obj, "get_name", None)
    if get_name is None:
        return repr(obj)
    parent = getattr(obj, "get_parent", lambda: None)()
    if parent is not None and hasattr(obj, "get_direction"):
        return f"{parent.get_name()}:{get_name()}"
    return str(get_name())


def to_gst_state(state: State):
    require_gstreamer()
    return {
        State.NULL: Gst.State.NULL,
        State.READY: Gst.State.READY,
        State.PAUSED: Gst.State.PAUSED,
        State.PLAYING: Gst.State.PLAYING,
    }[State(state)]


# ------------------------------------------------------------------ elements


def make_element(factory: str, name: Optional[str] = None, **properties: Any):
    """
    Instantiate ``factory`` and apply ``properties``.

    Keyword names use underscores in place of dashes, so ``allow_not_linked``
    sets ``allow-not-linked``.  A trailing underscore escapes Python keywords
    (``async_``).
    """

    require_gstreamer()
    element = Gst.ElementFactory.make(factory, name)
    if element is None:
        raise GraphError(f"GStreamer element factory '{factory}' is not available.")
    for key, value in properties.items():
        set_property(element, key.rstrip("_").replace("_", "-"), value)
    return element


def make_queue(
    name: str,
    *,
    max_time_ns: Optional[int] = None,
    max_buffers: int = 0,
    max_bytes: int = 0,
    leaky: int = 0,
):
    queue = make_element("queue", name)
    set_property(queue, "max-size-buffers", int(max_buffers))
    set_property(queue, "max-size-bytes", int(max_bytes))
    if max_time_ns is None:
        set_property(queue, "max-size-time", 5 * Gst.SECOND)
    else:
        set_property(queue, "max-size-time", max(0, int(max_time_ns)))
    set_property(queue, "leaky", int(leaky))
    return queue


def set_property(obj: Any, name: str, value: Any) -> None:
    try:
        obj.set_property(name, value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise GraphError(f"Failed to set '{name}' to {value!r} on {describe(obj)}: {exc}") from exc


def get_property(obj: Any, name: str) -> Any:
    try:
        return obj.get_property(name)
    except (TypeError, ValueError) as exc:
        raise GraphError(f"Failed to read '{name}' from {describe(obj)}: {exc}") from exc


def caps_from_string(description: str):
    require_gstreamer()
    caps = Gst.Caps.from_string(description)
    if caps is None:
        raise GraphError(f"Invalid caps description '{description}'.")
    return caps


def add_many(container: Any, *elements: Any) -> None:
    for element in elements:
        try:
            result = container.add(element)
        except Exception as exc:  # gst-python overrides raise AddError
            raise GraphError(f"Failed to add {describe(element)} to {describe(container)}.") from exc
        if result is False:
            raise GraphError(f"Failed to add {describe(element)} to {describe(container)}.")


def remove_many(container: Any, *elements: Any) -> None:
    """Bring each element to NULL and remove it from ``container``."""

    for element in elements:
        if element.get_parent() is not container:
            continue
        element.set_state(Gst.State.NULL)
        try:
            result = container.remove(element)
        except Exception as exc:  # gst-python overrides raise RemoveError
            raise GraphError(
                f"Failed to remove {describe(element)} from {describe(container)}."
            ) from exc
        if result is False:
            raise GraphError(f"Failed to remove {describe(element)} from {describe(container)}.")


def link_many(*elements: Any) -> None:
    for upstream, downstream in zip(elements, elements[1:]):
        if not upstream.link(downstream):
            raise GraphError(f"Failed to link {describe(upstream)} -> {describe(downstream)}.")


def link_pads(src_pad: Any, sink_pad: Any) -> None:
    try:
        result = src_pad.link(sink_pad)
    except Exception as exc:  # gst-python overrides raise LinkError
        raise GraphError(f"Failed to link {describe(src_pad)} -> {describe(sink_pad)}: {exc}") from exc
    if result != Gst.PadLinkReturn.OK:
        raise GraphError(f"Failed to link {describe(src_pad)} -> {describe(sink_pad)}: {result}")


def set_state_many(state: Any, *elements: Any) -> None:
    for element in elements:
        if element.set_state(state) == Gst.StateChangeReturn.FAILURE:
            raise GraphError(f"{describe(element)} rejected state change to {state}.")


def static_pad(element: Any, name: str):
    pad = element.get_static_pad(name)
    if pad is None:
        raise GraphError(f"{describe(element)} has no '{name}' pad.")
    return pad


# ---------------------------------------------------------------------- pads


def release_request_pad(element: Any, pad_name: str = "sink") -> None:
    """
    Release the request pad that ``element``'s ``pad_name`` pad is linked to.

    Request pads belong to the element that handed them out (a tee, compositor
    or audiomixer), so the release goes through the peer's parent.  Unlinked
    pads are left alone.
    """

    pad = static_pad(element, pad_name)
    if not pad.is_linked():
        return
    peer = pad.get_peer()
    if peer is None:
        raise GraphError(f"Could not retrieve peer pad for {describe(element)}.")
    parent = peer.get_parent_element()
    if parent is None:
        raise GraphError(f"Failed to get parent element for peer pad of {describe(element)}.")
    LOG.debug("Releasing request pad %s", describe(peer))
    parent.release_request_pad(peer)


def peer_pad(pad: Any):
    peer = pad.get_peer()
    if peer is None:
        raise GraphError(f"{describe(pad)} is not linked.")
    return peer


def set_peer_pad_property(pad: Any, name: str, value: Any) -> None:
    set_property(peer_pad(pad), name, value)


def get_peer_pad_property(pad: Any, name: str) -> Any:
    return get_property(peer_pad(pad), name)


def pad_media_type(pad: Any) -> Optional[str]:
    caps = pad.get_current_caps() or pad.query_caps(None)
    if caps is None or caps.get_size() == 0:
        return None
    return caps.get_structure(0).get_name()


def running_time(element: Any) -> int:
    """Current running time of ``element`` in nanoseconds, 0 before the clock runs."""

    value = element.get_current_running_time()
    if value is None or value == Gst.CLOCK_TIME_NONE:
        return 0
    return int(value)
