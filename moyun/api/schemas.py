from __future__ import annotations

from pydantic import BaseModel, Field


class CharacterRequest(BaseModel):
    text: str


class ModeRequest(BaseModel):
    mode: str


class CanvasRequest(BaseModel):
    strokes: list[list[tuple[float, float]]] = Field(default_factory=list)
    width: int | None = Field(default=None, ge=1, le=2000)
    height: int | None = Field(default=None, ge=1, le=2000)
    dpr: float | None = Field(default=None, gt=0, le=4)
    replace: bool = True


class PresenterEventRequest(BaseModel):
    event: str
    writer: int | None = None
    summary: dict | None = None
    error: str | None = None


class GradeRequest(BaseModel):
    character: str
    image_data_url: str
