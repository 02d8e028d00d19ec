from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass, field

from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr, field_validator

from moyun.services.gemini import GeminiService

logger = logging.getLogger(__name__)

FALLBACK_FEEDBACK = "暂时无法分析图片，请稍后再试。"
FALLBACK_IMPROVEMENT = "请检查网络连接"
MAX_LIST_ITEMS = 3

_DATA_URL_PREFIX = re.compile(r"^data:(image/[\w.+-]+)(?:;[^;,]*)*;base64,", re.IGNORECASE)

GRADING_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "NUMBER", "description": "0-100分的评分"},
        "feedback": {"type": "STRING", "description": "综合且具有建设性的反馈段落，使用中文"},
        "strengths": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "1-3个书写优点，使用中文",
        },
        "improvements": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "1-3个具体的改进建议，使用中文",
        },
    },
    "required": ["score", "feedback", "strengths", "improvements"],
}


@dataclass(frozen=True)
class GradingReport:
    score: int
    feedback: str
    strengths: tuple[str, ...] = field(default_factory=tuple)
    improvements: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def fallback(cls) -> GradingReport:
        return cls(score=0, feedback=FALLBACK_FEEDBACK, strengths=(), improvements=(FALLBACK_IMPROVEMENT,))

    @property
    def band(self) -> str:
        return score_band(self.score)

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "feedback": self.feedback,
            "strengths": list(self.strengths),
            "improvements": list(self.improvements),
            "band": self.band,
        }


class _GradingPayload(BaseModel):
    score: StrictInt | StrictFloat
    feedback: StrictStr
    strengths: list[StrictStr]
    improvements: list[StrictStr]

    @field_validator("strengths", "improvements")
    @classmethod
    def _trim(cls, values: list[str]) -> list[str]:
        cleaned = [item.strip() for item in values if item.strip()]
        return cleaned[:MAX_LIST_ITEMS]


def score_band(score: int) -> str:
    if score >= 80:
        return "green"
    if score >= 60:
        return "amber"
    return "red"


def strip_data_url(image: str) -> tuple[str, str]:
    """Split a canvas data URL into ``(media_type, base64_data)``.

    Any ``data:image/<subtype>[;params];base64,`` header is accepted; ``image/jpg``
    is normalised to ``image/jpeg``. Strings without a data-URL header are
    treated as bare base64 PNG data.
    """
    raw = image.strip()
    match = _DATA_URL_PREFIX.match(raw)
    if not match:
        return "image/png", raw
    media_type = match.group(1).lower()
    if media_type == "image/jpg":
        media_type = "image/jpeg"
    return media_type, raw[match.end():]


def build_grading_prompt(target_char: str) -> str:
    return (
        f'我正在练习书写汉字 "{target_char}"。\n'
        "附件是我在数字画布上的手写作品。\n"
        "请像一位书法老师一样，从以下几个方面对我的书写进行评分（0-100分）：\n"
        "1. 间架结构（是否重心平稳，结构匀称）\n"
        "2. 笔画比例（横竖长短是否合适）\n"
        "3. 笔画在田字格中的位置\n"
        "\n"
        "请用中文回复，态度要鼓励但严格。\n"
        "请提供具体的“优点”和“改进建议”，各 1-3 条。"
    )


def parse_grading_payload(payload: dict) -> GradingReport:
    parsed = _GradingPayload.model_validate(payload)
    score = max(0, min(100, round(parsed.score)))
    return GradingReport(
        score=score,
        feedback=parsed.feedback.strip(),
        strengths=tuple(parsed.strengths),
        improvements=tuple(parsed.improvements),
    )


class GradingClient:
    def __init__(self, service: GeminiService | None = None) -> None:
        self.service = service or GeminiService()

    async def grade(self, target_char: str, image: str | bytes) -> GradingReport:
        try:
            if isinstance(image, bytes):
                media_type, data = "image/png", base64.b64encode(image).decode("ascii")
            else:
                media_type, data = strip_data_url(image)
            if not data:
                raise ValueError("empty image payload")
            payload = await self.service.generate_json(
                prompt=build_grading_prompt(target_char),
                schema=GRADING_SCHEMA,
                image=(media_type, data),
            )
            return parse_grading_payload(payload)
        except Exception:
            logger.warning("grading failed for %r, using fallback", target_char, exc_info=True)
            return GradingReport.fallback()
