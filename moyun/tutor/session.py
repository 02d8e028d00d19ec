from __future__ import annotations

import logging
import os
import unicodedata
import uuid
from collections import OrderedDict

from moyun.canvas.surface import DrawingSurface
from moyun.config import INITIAL_CHARACTER, CanvasStyle, PresenterOptions
from moyun.presenter.hanzi_writer import HanziWriterChannel
from moyun.presenter.stroke_order import PresentationMode, StrokeOrderPresenter
from moyun.services.character_info import CharacterInfoClient, CharacterRecord
from moyun.services.grading import GradingClient, GradingReport

logger = logging.getLogger(__name__)

DETAILS_ERROR_MESSAGE = "无法获取汉字详情。"

_ZWJ = "\u200d"

_HANGUL_FOLLOWERS = {
    "L": {"L", "V", "LV", "LVT"},
    "V": {"V", "T"},
    "LV": {"V", "T"},
    "T": {"T"},
    "LVT": {"T"},
}


def _is_regional_indicator(ch: str) -> bool:
    return 0x1F1E6 <= ord(ch) <= 0x1F1FF


def _hangul_kind(ch: str) -> str | None:
    code = ord(ch)
    if 0x1100 <= code <= 0x115F or 0xA960 <= code <= 0xA97C:
        return "L"
    if 0x1160 <= code <= 0x11A7 or 0xD7B0 <= code <= 0xD7C6:
        return "V"
    if 0x11A8 <= code <= 0x11FF or 0xD7CB <= code <= 0xD7FB:
        return "T"
    if 0xAC00 <= code <= 0xD7A3:
        return "LV" if (code - 0xAC00) % 28 == 0 else "LVT"
    return None


def _extends_grapheme(ch: str) -> bool:
    code = ord(ch)
    if unicodedata.category(ch) in {"Mn", "Mc", "Me"}:
        return True
    if 0xFE00 <= code <= 0xFE0F or 0xE0100 <= code <= 0xE01EF:
        return True
    return 0x1F3FB <= code <= 0x1F3FF


def first_grapheme(text: str) -> str:
    """Return the first user-perceived character of ``text``, ignoring surrounding whitespace.

    Joins combining marks, variation selectors, emoji modifiers, ZWJ sequences,
    a regional-indicator flag pair and a Hangul jamo syllable into one unit.
    """
    value = str(text or "").strip()
    if not value:
        return ""
    end = 1
    if len(value) > 1 and _is_regional_indicator(value[0]) and _is_regional_indicator(value[1]):
        end = 2
    kind = _hangul_kind(value[0])
    while kind is not None and end < len(value):
        following = _hangul_kind(value[end])
        if following not in _HANGUL_FOLLOWERS[kind]:
            break
        kind = following
        end += 1
    while end < len(value):
        ch = value[end]
        if ch == _ZWJ and end + 1 < len(value):
            end += 2
        elif _extends_grapheme(ch):
            end += 1
        else:
            break
    return value[:end]


class TutorSession:
    def __init__(
        self,
        *,
        character_client: CharacterInfoClient,
        grading_client: GradingClient,
        session_id: str | None = None,
        style: CanvasStyle | None = None,
        presenter_options: PresenterOptions | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.character_client = character_client
        self.grading_client = grading_client

        self.input_text = INITIAL_CHARACTER
        self.active_character = INITIAL_CHARACTER
        self.record: CharacterRecord | None = None
        self.report: GradingReport | None = None
        self.grading = False
        self.error: str | None = None
        self.mode = PresentationMode.DEMONSTRATE

        self.surface = DrawingSurface(style)
        self.channel = HanziWriterChannel()
        self.presenter = StrokeOrderPresenter(
            container_id=f"hanzi-writer-{self.session_id[:9]}",
            factory=self.channel.create,
            options=presenter_options,
        )
        self._info_token = 0

    @property
    def can_submit_drawing(self) -> bool:
        return self.surface.has_ink and not self.grading

    async def start(self) -> None:
        self.presenter.mount(self.active_character, self.mode)
        await self._load_details(self.active_character)

    async def submit_character(self, text: str | None = None) -> bool:
        if text is not None:
            self.input_text = text
        char = first_grapheme(self.input_text)
        if not char:
            return False

        self.active_character = char
        self.input_text = char
        self.report = None
        self.presenter.set_character(char)
        await self._load_details(char)
        return True

    def set_mode(self, mode: PresentationMode | str) -> None:
        self.mode = PresentationMode(mode)
        self.presenter.set_mode(self.mode)

    async def submit_drawing(self) -> GradingReport:
        target = self.active_character
        image = self.surface.export_data_url()
        self.grading = True
        try:
            report = await self.grading_client.grade(target, image)
        finally:
            self.grading = False
        self.report = report
        return report

    async def _load_details(self, char: str) -> None:
        self._info_token += 1
        token = self._info_token
        self.error = None
        self.record = None
        try:
            record = await self.character_client.fetch(char)
        except Exception:
            logger.exception("character details failed for %r", char)
            if token == self._info_token:
                self.error = DETAILS_ERROR_MESSAGE
            return
        if token != self._info_token:
            logger.info("discarding stale details for %r", char)
            return
        self.record = record

    def snapshot(self) -> dict:
        return {
            "session_id": self.session_id,
            "input": self.input_text,
            "active_character": self.active_character,
            "record": self.record.as_dict() if self.record else None,
            "error": self.error,
            "report": self.report.as_dict() if self.report else None,
            "grading": self.grading,
            "mode": self.mode.value,
            "canvas": {
                "has_ink": self.surface.has_ink,
                "can_submit": self.can_submit_drawing,
                "width": self.surface.width,
                "height": self.surface.height,
                "dpr": self.surface.dpr,
            },
            "presenter": self.presenter.snapshot(),
        }


class SessionStore:
    def __init__(
        self,
        *,
        character_client: CharacterInfoClient | None = None,
        grading_client: GradingClient | None = None,
        max_sessions: int | None = None,
    ) -> None:
        self.character_client = character_client or CharacterInfoClient()
        self.grading_client = grading_client or GradingClient()
        if max_sessions is None:
            max_sessions = int(os.getenv("MOYUN_MAX_SESSIONS", "256") or 256)
        self.max_sessions = max(1, max_sessions)
        self._sessions: OrderedDict[str, TutorSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self) -> TutorSession:
        session = TutorSession(
            character_client=self.character_client,
            grading_client=self.grading_client,
        )
        self._sessions[session.session_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("evicted session %s", evicted)
        await session.start()
        return session

    def get(self, session_id: str) -> TutorSession:
        session = self._sessions[session_id]
        self._sessions.move_to_end(session_id)
        return session
