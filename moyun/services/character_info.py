from __future__ import annotations

import logging
import os
from collections import OrderedDict
from dataclasses import asdict, dataclass

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

from moyun.services.gemini import GeminiService

logger = logging.getLogger(__name__)

CHARACTER_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "char": {"type": "STRING", "description": "汉字字符"},
        "pinyin": {"type": "STRING", "description": "汉字的拼音"},
        "definition": {"type": "STRING", "description": "汉字的中文简要释义"},
        "radical": {"type": "STRING", "description": "汉字的部首"},
        "strokeCount": {"type": "NUMBER", "description": "汉字的总笔画数"},
    },
    "required": ["char", "pinyin", "definition", "radical", "strokeCount"],
}


@dataclass(frozen=True)
class CharacterRecord:
    char: str
    pinyin: str
    definition: str
    radical: str
    stroke_count: int

    @classmethod
    def fallback(cls, char: str) -> CharacterRecord:
        return cls(char=char, pinyin="...", definition="暂无释义", radical="?", stroke_count=0)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["strokeCount"] = data.pop("stroke_count")
        return data


class _CharacterPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    char: StrictStr
    pinyin: StrictStr
    definition: StrictStr
    radical: StrictStr
    stroke_count: StrictInt | StrictFloat = Field(alias="strokeCount")

    @field_validator("stroke_count")
    @classmethod
    def _whole_non_negative(cls, value: int | float) -> int | float:
        if value < 0 or float(value) != int(value):
            raise ValueError("strokeCount must be a non-negative whole number")
        return value


def build_character_prompt(char: str) -> str:
    return f'请提供汉字 "{char}" 的以下信息：拼音、中文释义、部首、总笔画数。'


def parse_character_payload(char: str, payload: dict) -> CharacterRecord:
    parsed = _CharacterPayload.model_validate(payload)
    if parsed.char != char:
        logger.debug("model echoed %r for requested character %r", parsed.char, char)
    return CharacterRecord(
        char=char,
        pinyin=parsed.pinyin.strip(),
        definition=parsed.definition.strip(),
        radical=parsed.radical.strip(),
        stroke_count=int(parsed.stroke_count),
    )


class CharacterInfoClient:
    def __init__(self, service: GeminiService | None = None, *, cache_size: int | None = None) -> None:
        self.service = service or GeminiService()
        if cache_size is None:
            cache_size = int(os.getenv("MOYUN_CHARACTER_CACHE_SIZE", "0") or 0)
        self.cache_size = max(0, cache_size)
        self._cache: OrderedDict[str, CharacterRecord] = OrderedDict()

    async def fetch(self, char: str) -> CharacterRecord:
        if not char:
            raise ValueError("character is required")

        cached = self._cache.get(char)
        if cached is not None:
            self._cache.move_to_end(char)
            return cached

        try:
            payload = await self.service.generate_json(
                prompt=build_character_prompt(char),
                schema=CHARACTER_SCHEMA,
            )
            record = parse_character_payload(char, payload)
        except Exception:
            logger.warning("character details unavailable for %r, using fallback", char, exc_info=True)
            return CharacterRecord.fallback(char)

        self._remember(record)
        return record

    def _remember(self, record: CharacterRecord) -> None:
        if not self.cache_size:
            return
        self._cache[record.char] = record
        self._cache.move_to_end(record.char)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
