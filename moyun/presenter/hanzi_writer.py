from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

BROWSER_EVENTS = {"loaded", "load_failed", "animation_complete", "trace_complete"}


class HanziWriterBridge:
    """Widget whose calls become commands for the page's HanziWriter instance."""

    def __init__(self, channel: HanziWriterChannel, writer_id: int) -> None:
        self.channel = channel
        self.writer_id = writer_id
        self._on_loaded: Callable[[], None] | None = None
        self._on_load_failed: Callable[[Any], None] | None = None
        self._on_animation_complete: Callable[[], None] | None = None
        self._on_trace_complete: Callable[[dict], None] | None = None

    def animate(self, on_complete: Callable[[], None] | None = None, *, delay_ms: int = 0) -> None:
        self._on_animation_complete = on_complete
        self.channel.push(self.writer_id, "animateCharacter", delayMs=int(delay_ms))

    def start_guided_trace(self, on_complete: Callable[[dict], None]) -> None:
        self._on_trace_complete = on_complete
        self.channel.push(self.writer_id, "quiz")

    def cancel_guided_trace(self) -> None:
        self._on_trace_complete = None
        self.channel.push(self.writer_id, "cancelQuiz")

    def show_outline(self) -> None:
        self.channel.push(self.writer_id, "showOutline")

    def hide_outline(self) -> None:
        self.channel.push(self.writer_id, "hideOutline")

    def handle(self, event: str, *, summary: dict | None = None, error: str | None = None) -> None:
        if event == "loaded" and self._on_loaded is not None:
            self._on_loaded()
        elif event == "load_failed" and self._on_load_failed is not None:
            self._on_load_failed(error or "load failed")
        elif event == "animation_complete" and self._on_animation_complete is not None:
            callback, self._on_animation_complete = self._on_animation_complete, None
            callback()
        elif event == "trace_complete" and self._on_trace_complete is not None:
            callback, self._on_trace_complete = self._on_trace_complete, None
            callback(summary or {})


class HanziWriterChannel:
    """Ordered command queue between a presenter and the browser.

    Each ``create`` call supersedes the previous writer; events that the page
    reports for an older writer are dropped.
    """

    def __init__(self) -> None:
        self._commands: list[dict] = []
        self._writer: HanziWriterBridge | None = None
        self._next_id = 0

    @property
    def writer_id(self) -> int | None:
        return self._writer.writer_id if self._writer is not None else None

    def create(
        self,
        container_id: str,
        char: str,
        options: dict,
        on_loaded: Callable[[], None],
        on_load_failed: Callable[[Any], None],
    ) -> HanziWriterBridge:
        self._next_id += 1
        bridge = HanziWriterBridge(self, self._next_id)
        bridge._on_loaded = on_loaded
        bridge._on_load_failed = on_load_failed
        self._writer = bridge
        self.push(bridge.writer_id, "create", container=container_id, char=char, options=dict(options))
        return bridge

    def push(self, writer_id: int, op: str, **params: Any) -> None:
        self._commands.append({"writer": writer_id, "op": op, **params})

    def drain(self) -> list[dict]:
        commands, self._commands = self._commands, []
        return commands

    def dispatch(
        self,
        event: str,
        *,
        writer_id: int | None = None,
        summary: dict | None = None,
        error: str | None = None,
    ) -> bool:
        if event not in BROWSER_EVENTS:
            raise ValueError(f"unknown widget event: {event}")
        writer = self._writer
        if writer is None or (writer_id is not None and writer_id != writer.writer_id):
            logger.debug("dropping %s for stale writer %s", event, writer_id)
            return False
        writer.handle(event, summary=summary, error=error)
        return True
