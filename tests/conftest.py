from __future__ import annotations

import sys

import pytest

import switcher.api.server  # noqa: F401  (registers every switcher module)
import switcher.mixer  # noqa: F401
from switcher.graph import sources
from switcher.utils import gst as gst_utils

from fakegst import FakeGst


@pytest.fixture
def fake_gst(monkeypatch) -> FakeGst:
    namespace = FakeGst()
    for name, module in list(sys.modules.items()):
        if name.startswith("switcher") and hasattr(module, "Gst"):
            monkeypatch.setattr(module, "Gst", namespace)
    monkeypatch.setattr(gst_utils, "_GST_INITIALISED", False)
    return namespace


@pytest.fixture(autouse=True)
def recordings_dir(tmp_path, monkeypatch):
    directory = tmp_path / "recordings"
    monkeypatch.setenv(sources.RECORDINGS_DIR_ENV, str(directory))
    return directory
