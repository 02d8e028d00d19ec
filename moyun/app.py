from __future__ import annotations

import base64
import binascii
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from moyun.api.schemas import (
    CanvasRequest,
    CharacterRequest,
    GradeRequest,
    ModeRequest,
    PresenterEventRequest,
)
from moyun.config import INITIAL_CHARACTER, STATIC_DIR, TEMPLATES_DIR, configure_logging
from moyun.presenter.stroke_order import PresentationMode
from moyun.services.grading import strip_data_url
from moyun.tutor.session import SessionStore, TutorSession, first_grapheme

store = SessionStore()
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    yield


app = FastAPI(title="MoYun Handwriting Tutor", version="0.1.0", lifespan=lifespan)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "llm_available": store.character_client.service.available()}


@app.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "index.html",
        {"initial_character": INITIAL_CHARACTER},
    )


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    svg = (
        "<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 64 64'>"
        "<rect width='64' height='64' rx='10' fill='#dc2626'/>"
        "<text x='32' y='44' text-anchor='middle' font-size='36' fill='white' font-family='serif'>墨</text>"
        "</svg>"
    )
    return Response(content=svg, media_type="image/svg+xml")


@app.post("/api/sessions")
async def create_session() -> dict:
    session = await store.create()
    return {"ok": True, "session": session.snapshot()}


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str) -> dict:
    return {"ok": True, "session": _session_or_404(session_id).snapshot()}


@app.post("/api/sessions/{session_id}/character")
async def submit_character(session_id: str, req: CharacterRequest) -> dict:
    session = _session_or_404(session_id)
    accepted = await session.submit_character(req.text)
    return {"ok": True, "accepted": accepted, "session": session.snapshot()}


@app.put("/api/sessions/{session_id}/mode")
def set_mode(session_id: str, req: ModeRequest) -> dict:
    session = _session_or_404(session_id)
    try:
        mode = PresentationMode(str(req.mode).strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"unsupported mode: {req.mode}") from exc
    session.set_mode(mode)
    return {"ok": True, "session": session.snapshot()}


@app.post("/api/sessions/{session_id}/canvas")
def draw_strokes(session_id: str, req: CanvasRequest) -> dict:
    session = _session_or_404(session_id)
    surface = session.surface
    width = req.width or surface.width
    height = req.height or surface.height
    dpr = req.dpr or surface.dpr
    if (width, height, dpr) != (surface.width, surface.height, surface.dpr):
        surface.resize(width, height, dpr=dpr)
    elif req.replace:
        surface.reset()
    surface.replay([list(stroke) for stroke in req.strokes])
    return {"ok": True, "has_ink": surface.has_ink, "can_submit": session.can_submit_drawing}


@app.delete("/api/sessions/{session_id}/canvas")
def clear_canvas(session_id: str) -> dict:
    session = _session_or_404(session_id)
    session.surface.reset()
    return {"ok": True, "has_ink": False, "can_submit": False}


@app.get("/api/sessions/{session_id}/canvas.png")
def canvas_image(session_id: str) -> Response:
    session = _session_or_404(session_id)
    if not session.surface.has_ink:
        raise HTTPException(status_code=404, detail="canvas is empty")
    return Response(content=session.surface.export(), media_type="image/png")


@app.post("/api/sessions/{session_id}/grade")
async def grade_session(session_id: str) -> dict:
    session = _session_or_404(session_id)
    if session.grading:
        raise HTTPException(status_code=409, detail="grading already in progress")
    if not session.surface.has_ink:
        raise HTTPException(status_code=409, detail="draw something before grading")
    report = await session.submit_drawing()
    return {"ok": True, "report": report.as_dict(), "session": session.snapshot()}


@app.get("/api/sessions/{session_id}/presenter/commands")
def presenter_commands(session_id: str) -> dict:
    session = _session_or_404(session_id)
    return {"ok": True, "commands": session.channel.drain(), "presenter": session.presenter.snapshot()}


@app.post("/api/sessions/{session_id}/presenter/events")
def presenter_event(session_id: str, req: PresenterEventRequest) -> dict:
    session = _session_or_404(session_id)
    try:
        accepted = session.channel.dispatch(
            req.event,
            writer_id=req.writer,
            summary=req.summary,
            error=req.error,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "ok": True,
        "accepted": accepted,
        "commands": session.channel.drain(),
        "presenter": session.presenter.snapshot(),
    }


@app.post("/api/grade")
async def grade_image(req: GradeRequest) -> dict:
    char = first_grapheme(req.character)
    if not char:
        raise HTTPException(status_code=400, detail="character is required")

    raw = str(req.image_data_url or "").strip()
    _media_type, data = strip_data_url(raw)
    if not raw.startswith("data:image/") or data == raw:
        raise HTTPException(status_code=400, detail="invalid image_data_url")
    try:
        payload = base64.b64decode(data, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise HTTPException(status_code=400, detail="invalid base64 image payload") from exc
    if not payload:
        raise HTTPException(status_code=400, detail="empty image payload")

    report = await store.grading_client.grade(char, raw)
    return {"ok": True, "character": char, "report": report.as_dict()}


def _session_or_404(session_id: str) -> TutorSession:
    try:
        return store.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="session not found") from exc


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host=os.getenv("MOYUN_HOST", "127.0.0.1"), port=int(os.getenv("MOYUN_PORT", "8000")))
