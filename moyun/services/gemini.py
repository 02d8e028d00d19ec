from __future__ import annotations

import json
import os

import httpx

from moyun.config import DEFAULT_GEMINI_BASE_URL, DEFAULT_GEMINI_MODEL


class GeminiError(RuntimeError):
    pass


class GeminiService:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        model_override: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
        self.base_url = os.getenv("MOYUN_GEMINI_BASE_URL") or DEFAULT_GEMINI_BASE_URL
        self.model = os.getenv("MOYUN_GEMINI_MODEL") or DEFAULT_GEMINI_MODEL
        if model_override:
            self.model = str(model_override).strip()

        raw_timeout = os.getenv("MOYUN_GEMINI_TIMEOUT_SEC", "").strip()
        self.timeout: float | None = float(raw_timeout) if raw_timeout else None
        self._transport = transport

    def available(self) -> bool:
        return bool(self.api_key)

    async def generate_json(
        self,
        *,
        prompt: str,
        schema: dict,
        image: tuple[str, str] | None = None,
    ) -> dict:
        """Run one structured generation and return the decoded JSON object.

        ``image`` is an optional ``(media_type, base64_data)`` pair sent inline
        ahead of the prompt text.
        """
        parts: list[dict] = []
        if image is not None:
            media_type, data = image
            parts.append({"inline_data": {"mime_type": media_type, "data": data}})
        parts.append({"text": prompt})
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        data = await self._generate_content(payload)
        text = _extract_text(data)
        if not text:
            raise GeminiError("empty generation response")
        parsed = json.loads(text)
        if not isinstance(parsed, dict):
            raise GeminiError("generation response is not a JSON object")
        return parsed

    async def _generate_content(self, payload: dict) -> dict:
        if not self.api_key:
            raise GeminiError("missing gemini api key")

        url = self.base_url.rstrip("/") + f"/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        client_kwargs: dict = {"transport": self._transport}
        if self.timeout is not None:
            client_kwargs["timeout"] = self.timeout
        async with httpx.AsyncClient(**client_kwargs) as client:
            resp = await client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()


def _extract_text(payload: dict) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    texts: list[str] = []
    for part in content.get("parts") or []:
        if isinstance(part, dict) and "text" in part:
            texts.append(str(part.get("text") or ""))
    return "".join(texts).strip()
