"""
Switcher process entrypoint.

Parses arguments, initialises logging and GStreamer, optionally builds mixers
from a YAML startup file and serves the control API with uvicorn.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import yaml

from .api.server import create_app
from .api.state import SwitcherState
from .errors import SwitcherError
from .utils import gst
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


def load_config(path: Path) -> dict:
    """Read a startup document; an empty file yields no mixers."""

    with path.open("r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}
    if not isinstance(document, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return document


@asynccontextmanager
async def lifespan(state: SwitcherState) -> AsyncIterator[None]:
    LOG.info("Switcher lifespan starting")
    try:
        yield
    finally:
        LOG.info("Switcher lifespan shutting down")
        await asyncio.to_thread(state.close)


async def serve(
    state: SwitcherState, host: str = "127.0.0.1", port: int = 8080, log_level: int = logging.INFO
) -> None:
    """
    Run the control API inside an asyncio loop.

    Parameters
    ----------
    state:
        Mixer registry shared with the API routes.
    host, port:
        Bind address for the FastAPI/uvicorn server.
    log_level:
        Numeric level for uvicorn's own loggers; request lines are only
        logged at DEBUG.
    """

    import uvicorn

    @asynccontextmanager
    async def app_lifespan(_app) -> AsyncIterator[None]:
        async with lifespan(state):
            yield

    app = create_app(state=state, lifespan=app_lifespan)
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level=log_level,
        access_log=log_level <= logging.DEBUG,
        reload=False,
    )
    server = uvicorn.Server(config=server_config)

    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, shutting down server...", signum)
        server.should_exit = True

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live GStreamer audio/video switcher")
    parser.add_argument("--host", default="127.0.0.1", help="bind host for the API server")
    parser.add_argument("--port", type=int, default=8080, help="bind port for the API server")
    parser.add_argument("--config", type=Path, help="YAML file describing mixers to build at startup")
    parser.add_argument("--log-level", default="INFO", help="root log level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    state = SwitcherState()
    try:
        log_level = configure_logging(args.log_level)
        gst.require_gstreamer()
        if args.config is not None:
            state.load(load_config(args.config))
    except (OSError, ValueError, yaml.YAMLError, SwitcherError) as exc:
        LOG.error("Startup failed: %s", exc)
        state.close()
        return 1

    try:
        asyncio.run(serve(state, host=args.host, port=args.port, log_level=log_level))
    except KeyboardInterrupt:
        LOG.info("Switcher interrupted by user.")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
