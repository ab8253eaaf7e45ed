"""
FastAPI control surface for the switcher.

Every route delegates to a :class:`~switcher.mixer.Mixer` operation on a worker
thread and maps the switcher's typed errors onto HTTP status codes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from ..config import MixerConfig
from ..errors import AlreadyExists, GraphError, NotFound, SwitcherError, SystemFailure
from ..mixer import Mixer
from . import schemas
from .state import SwitcherState

LOG = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFound, 404),
    (AlreadyExists, 409),
    (GraphError, 422),
    (SystemFailure, 503),
)


async def _call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except SwitcherError as exc:
        for error_type, status in ERROR_STATUS:
            if isinstance(exc, error_type):
                raise HTTPException(status_code=status, detail=str(exc)) from exc
        LOG.exception("Unhandled switcher error")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _summary(mixer: Mixer) -> schemas.MixerSummary:
    return schemas.MixerSummary(
        name=mixer.name,
        state=mixer.state(),
        inputs=[config.name for config in mixer.inputs()],
        outputs=[entry["name"] for entry in mixer.outputs()],
        last_error=mixer.last_error,
    )


def create_app(
    *,
    state: Optional[SwitcherState] = None,
    lifespan: Optional[Callable[..., object]] = None,
) -> FastAPI:
    switcher_state = state or SwitcherState()

    app = FastAPI(title="Switcher API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.switcher = switcher_state

    async def get_mixer(name: str) -> Mixer:
        return await _call(switcher_state.get, name)

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "mixers": len(switcher_state.mixer_names())}

    @app.get("/mixers")
    async def list_mixers() -> dict:
        mixers = [await get_mixer(name) for name in switcher_state.mixer_names()]
        return {"mixers": [_summary(mixer).model_dump(mode="json") for mixer in mixers]}

    @app.post("/mixers", status_code=201, response_model=schemas.MixerSummary)
    async def create_mixer(payload: MixerConfig) -> schemas.MixerSummary:
        mixer = await _call(switcher_state.create_mixer, payload)
        return _summary(mixer)

    @app.get("/mixers/{mixer_name}")
    async def get_mixer_snapshot(mixer_name: str) -> dict:
        mixer = await get_mixer(mixer_name)
        return await _call(mixer.describe)

    @app.delete("/mixers/{mixer_name}", status_code=204)
    async def delete_mixer(mixer_name: str) -> Response:
        await _call(switcher_state.delete_mixer, mixer_name)
        return Response(status_code=204)

    @app.post("/mixers/{mixer_name}/state", response_model=schemas.MixerSummary)
    async def set_mixer_state(mixer_name: str, payload: schemas.StateRequest) -> schemas.MixerSummary:
        mixer = await get_mixer(mixer_name)
        await _call(mixer.set_state, payload.state)
        return _summary(mixer)

    @app.get("/mixers/{mixer_name}/dot")
    async def mixer_dot(mixer_name: str) -> Response:
        mixer = await get_mixer(mixer_name)
        dot = await _call(mixer.generate_dot)
        return Response(content=dot, media_type="text/vnd.graphviz")

    @app.get("/mixers/{mixer_name}/inputs")
    async def list_inputs(mixer_name: str) -> dict:
        mixer = await get_mixer(mixer_name)
        configs = await _call(mixer.inputs)
        return {"inputs": [config.model_dump(mode="json") for config in configs]}

    @app.post("/mixers/{mixer_name}/inputs", status_code=201, response_model=schemas.InputModel)
    async def add_input(mixer_name: str, payload: schemas.AddInputRequest) -> schemas.InputModel:
        mixer = await get_mixer(mixer_name)
        config = await _call(mixer.add_input, payload.config, payload.uri)
        return schemas.InputModel(uri=payload.uri, config=config)

    @app.get("/mixers/{mixer_name}/inputs/{input_name}", response_model=schemas.InputModel)
    async def get_input(mixer_name: str, input_name: str) -> schemas.InputModel:
        mixer = await get_mixer(mixer_name)
        config = await _call(mixer.input_config, input_name)
        uri = await _call(mixer.input_uri, input_name)
        return schemas.InputModel(uri=uri, config=config)

    @app.patch("/mixers/{mixer_name}/inputs/{input_name}", response_model=schemas.InputModel)
    async def update_input(
        mixer_name: str, input_name: str, payload: schemas.InputUpdateRequest
    ) -> schemas.InputModel:
        mixer = await get_mixer(mixer_name)
        config = await _call(mixer.update_input, input_name, payload.changes(), payload.update_config)
        uri = await _call(mixer.input_uri, input_name)
        return schemas.InputModel(uri=uri, config=config)

    @app.delete("/mixers/{mixer_name}/inputs/{input_name}", status_code=204)
    async def remove_input(mixer_name: str, input_name: str) -> Response:
        mixer = await get_mixer(mixer_name)
        await _call(mixer.remove_input, input_name)
        return Response(status_code=204)

    @app.get("/mixers/{mixer_name}/outputs")
    async def list_outputs(mixer_name: str) -> dict:
        mixer = await get_mixer(mixer_name)
        return {"outputs": await _call(mixer.outputs)}

    @app.post("/mixers/{mixer_name}/outputs", status_code=201, response_model=schemas.OutputModel)
    async def add_output(mixer_name: str, payload: schemas.AddOutputRequest) -> schemas.OutputModel:
        mixer = await get_mixer(mixer_name)
        await _call(mixer.add_output, payload.kind, payload.config, payload.location)
        return schemas.OutputModel(
            name=payload.config.name,
            kind=payload.kind,
            location=payload.location,
            config=payload.config,
        )

    @app.delete("/mixers/{mixer_name}/outputs/{output_name}", status_code=204)
    async def remove_output(mixer_name: str, output_name: str) -> Response:
        mixer = await get_mixer(mixer_name)
        await _call(mixer.remove_output, output_name)
        return Response(status_code=204)

    return app
