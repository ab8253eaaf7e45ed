"""
Process-wide log setup for the switcher entrypoint and the demo script.

Library modules only create ``logging.getLogger(__name__)`` loggers.  The
program that owns the process installs the handler here, once.  Streaming
threads log from ``pad-added`` and bus callbacks, so the thread name is part
of every record.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

# uvicorn logs one INFO line per request; keep them out of the mix log
# unless the whole process runs at DEBUG.
QUIET_LOGGERS = ("uvicorn.access",)


def resolve_level(level: Union[int, str]) -> int:
    """
    Turn ``"debug"``/``"INFO"``/``10`` into a numeric level.

    Raises :class:`ValueError` for names the logging module does not know.
    """

    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level!r}")
    return numeric


def configure_logging(level: Union[int, str] = logging.INFO, format: Optional[str] = None) -> int:
    """
    Install a stdout handler on the root logger unless one already exists.

    Returns the numeric level in effect for the switcher's own loggers.
    """

    numeric = resolve_level(level)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format or DEFAULT_FORMAT))
        root.addHandler(handler)
        root.setLevel(numeric)
    logging.getLogger("switcher").setLevel(numeric)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(numeric if numeric <= logging.DEBUG else logging.WARNING)
    return numeric
