from __future__ import annotations

import json
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import moyun.app as app_module
from moyun.services.character_info import CharacterInfoClient
from moyun.services.gemini import GeminiService
from moyun.services.grading import GradingClient
from moyun.tutor.session import SessionStore

CHARACTER_REPLY = {"char": "永", "pinyin": "yǒng", "definition": "长久，永远", "radical": "水", "strokeCount": 5}
GRADING_REPLY = {
    "score": 86,
    "feedback": "整体结构平稳，点画有力。",
    "strengths": ["重心平稳", "横画舒展"],
    "improvements": ["捺画再舒展一些"],
}


def gemini_reply(obj: dict) -> dict:
    text = json.dumps(obj, ensure_ascii=False)
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def make_service(handler) -> GeminiService:
    return GeminiService(api_key="test-key", transport=httpx.MockTransport(handler))


def routing_handler(calls: list[dict] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        parts = body["contents"][0]["parts"]
        if any("inline_data" in part for part in parts):
            return httpx.Response(200, json=gemini_reply(GRADING_REPLY))
        return httpx.Response(200, json=gemini_reply(CHARACTER_REPLY))

    return handler


@pytest.fixture()
def remote_calls() -> list[dict]:
    return []


@pytest.fixture()
def store(remote_calls):
    service = make_service(routing_handler(remote_calls))
    return SessionStore(
        character_client=CharacterInfoClient(service),
        grading_client=GradingClient(service),
    )


@pytest.fixture()
def client(store, monkeypatch):
    monkeypatch.setattr(app_module, "store", store)
    with TestClient(app_module.app) as c:
        yield c
