"""
PaperTrader – API Schemas (Pydantic)
=====================================
Schemas de validación para la superficie de control.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str
    service: str
    is_running: bool


class ControlOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    starting_cash: Optional[float] = Field(default=None, alias="startingCash", ge=0)
    strategy: Optional[str] = None


class ControlRequest(BaseModel):
    action: str = ""
    options: ControlOptions = Field(default_factory=ControlOptions)


class ControlResponse(BaseModel):
    ok: bool
    status: Optional[str] = None
    strategy: Optional[str] = None
    error: Optional[str] = None
