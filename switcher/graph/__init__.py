"""Subgraphs linked into a mixer: URI inputs and output branches."""

from .outputs import AutoOutput, FakeOutput, FileOutput, Output, RTMPOutput, create_output
from .sources import Input, StreamAttacher

__all__ = [
    "AutoOutput",
    "FakeOutput",
    "FileOutput",
    "Input",
    "Output",
    "RTMPOutput",
    "StreamAttacher",
    "create_output",
]
