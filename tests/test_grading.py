from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from conftest import GRADING_REPLY, gemini_reply, make_service
from moyun.services.grading import (
    FALLBACK_FEEDBACK,
    FALLBACK_IMPROVEMENT,
    GradingClient,
    GradingReport,
    score_band,
    strip_data_url,
)

PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


def _reply(obj: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=gemini_reply(obj))

    return handler


def test_strip_data_url_returns_media_type_and_raw_payload():
    assert strip_data_url(PNG_DATA_URL) == ("image/png", "iVBORw0KGgo=")
    assert strip_data_url("data:image/jpeg;base64,/9j/4AAQ") == ("image/jpeg", "/9j/4AAQ")
    assert strip_data_url("data:image/jpg;base64,/9j/4AAQ") == ("image/jpeg", "/9j/4AAQ")
    assert strip_data_url("data:image/webp;base64,UklGRiQA") == ("image/webp", "UklGRiQA")
    assert strip_data_url("data:image/gif;charset=binary;base64,R0lGODlh") == ("image/gif", "R0lGODlh")
    assert strip_data_url("iVBORw0KGgo=") == ("image/png", "iVBORw0KGgo=")


def test_grade_sends_image_inline_and_parses_report():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=gemini_reply(GRADING_REPLY))

    report = asyncio.run(GradingClient(make_service(handler)).grade("永", PNG_DATA_URL))

    assert report == GradingReport(
        score=86,
        feedback="整体结构平稳，点画有力。",
        strengths=("重心平稳", "横画舒展"),
        improvements=("捺画再舒展一些",),
    )
    parts = seen[0]["contents"][0]["parts"]
    assert parts[0]["inline_data"] == {"mime_type": "image/png", "data": "iVBORw0KGgo="}
    assert "永" in parts[1]["text"]
    assert "田字格" in parts[1]["text"]
    schema = seen[0]["generationConfig"]["responseSchema"]
    assert set(schema["required"]) == {"score", "feedback", "strengths", "improvements"}


def test_raw_png_bytes_are_base64_encoded():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=gemini_reply(GRADING_REPLY))

    asyncio.run(GradingClient(make_service(handler)).grade("永", b"\x89PNG-bytes"))

    inline = seen[0]["contents"][0]["parts"][0]["inline_data"]
    assert base64.b64decode(inline["data"]) == b"\x89PNG-bytes"


def test_score_is_rounded_clamped_and_lists_trimmed():
    reply = {
        "score": 104.6,
        "feedback": " 很好 ",
        "strengths": ["a", "b", "c", "d"],
        "improvements": ["x", " ", "y"],
    }
    report = asyncio.run(GradingClient(make_service(_reply(reply))).grade("永", PNG_DATA_URL))

    assert report.score == 100
    assert report.feedback == "很好"
    assert report.strengths == ("a", "b", "c")
    assert report.improvements == ("x", "y")

    low = asyncio.run(GradingClient(make_service(_reply({**reply, "score": -3}))).grade("永", PNG_DATA_URL))
    assert low.score == 0


def test_network_failure_returns_fallback_report():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    report = asyncio.run(GradingClient(make_service(handler)).grade("永", PNG_DATA_URL))

    assert report.score == 0
    assert report.feedback == FALLBACK_FEEDBACK
    assert report.strengths == ()
    assert report.improvements == (FALLBACK_IMPROVEMENT,)
    assert report == GradingReport.fallback()


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "internal"}),
        httpx.Response(200, json={"candidates": []}),
        httpx.Response(200, json=gemini_reply({"score": "high", "feedback": "", "strengths": [], "improvements": []})),
        httpx.Response(200, json=gemini_reply({"score": 70, "feedback": "ok"})),
    ],
)
def test_bad_responses_return_fallback_report(response):
    client = GradingClient(make_service(lambda request: response))
    assert asyncio.run(client.grade("永", PNG_DATA_URL)) == GradingReport.fallback()


def test_empty_image_returns_fallback_without_request():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, json=gemini_reply(GRADING_REPLY))

    report = asyncio.run(GradingClient(make_service(handler)).grade("永", "data:image/png;base64,"))

    assert report == GradingReport.fallback()
    assert calls["count"] == 0


def test_score_band_thresholds():
    assert score_band(100) == "green"
    assert score_band(80) == "green"
    assert score_band(79) == "amber"
    assert score_band(60) == "amber"
    assert score_band(59) == "red"
    assert score_band(0) == "red"
    assert GradingReport.fallback().as_dict()["band"] == "red"
