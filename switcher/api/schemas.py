"""
Pydantic request/response models for the HTTP control surface.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..config import InputConfig, OutputConfig, OutputKind, State


class StateRequest(BaseModel):
    state: State


class AddInputRequest(BaseModel):
    uri: str = Field(min_length=1)
    config: InputConfig


class AddOutputRequest(BaseModel):
    kind: OutputKind
    config: OutputConfig
    location: Optional[str] = None


class InputUpdateRequest(BaseModel):
    # Same bounds as AudioConfig and VideoConfig.
    volume: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    zorder: Optional[int] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    xpos: Optional[int] = None
    ypos: Optional[int] = None
    alpha: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    update_config: bool = True

    @model_validator(mode="after")
    def _require_change(self) -> "InputUpdateRequest":
        if not self.changes():
            raise ValueError("at least one property is required")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"update_config"}, exclude_none=True)


class InputModel(BaseModel):
    uri: str
    config: InputConfig


class OutputModel(BaseModel):
    name: str
    kind: OutputKind
    location: Optional[str] = None
    config: OutputConfig


class MixerSummary(BaseModel):
    name: str
    state: State
    inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)
    last_error: Optional[str] = None
