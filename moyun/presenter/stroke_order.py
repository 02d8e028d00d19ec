"""Stroke-order presenter.

Sequences an opaque stroke-order widget through its lifecycle for one
character at a time: create, wait for stroke data, then either loop the
animation (demonstrate) or run a guided trace. The widget is reached only
through :class:`StrokeOrderWidget`, so any implementation that honours the
callbacks can be plugged in.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Protocol

from moyun.config import PresenterOptions

logger = logging.getLogger(__name__)


class PresentationMode(str, Enum):
    DEMONSTRATE = "demonstrate"
    GUIDED_TRACE = "guided-trace"


class PresenterState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY_DEMONSTRATE = "ready-demonstrate"
    READY_QUIZ = "ready-quiz"


class StrokeOrderWidget(Protocol):
    def animate(self, on_complete: Callable[[], None] | None = None, *, delay_ms: int = 0) -> None: ...

    def start_guided_trace(self, on_complete: Callable[[dict], None]) -> None: ...

    def cancel_guided_trace(self) -> None: ...

    def show_outline(self) -> None: ...

    def hide_outline(self) -> None: ...


WidgetFactory = Callable[
    [str, str, dict, Callable[[], None], Callable[[Any], None]],
    StrokeOrderWidget,
]


class StrokeOrderPresenter:
    def __init__(
        self,
        *,
        container_id: str,
        factory: WidgetFactory,
        options: PresenterOptions | None = None,
        on_trace_complete: Callable[[dict], None] | None = None,
    ) -> None:
        self.container_id = container_id
        self.factory = factory
        self.options = options or PresenterOptions()
        self.on_trace_complete = on_trace_complete

        self.character: str | None = None
        self.mode = PresentationMode.DEMONSTRATE
        self.state = PresenterState.UNINITIALIZED
        self.last_error: str | None = None
        self.last_trace_summary: dict | None = None

        self._widget: StrokeOrderWidget | None = None
        self._generation = 0
        self._run = 0

    @property
    def ready(self) -> bool:
        return self.state in {PresenterState.READY_DEMONSTRATE, PresenterState.READY_QUIZ}

    def mount(self, char: str, mode: PresentationMode = PresentationMode.DEMONSTRATE) -> None:
        self.mode = PresentationMode(mode)
        self.set_character(char)

    def set_character(self, char: str) -> None:
        if not char:
            return
        self.character = char
        self._create()

    def set_mode(self, mode: PresentationMode | str) -> None:
        mode = PresentationMode(mode)
        if mode == self.mode:
            return
        self.mode = mode
        if not self.ready or self._widget is None:
            # Applied once the pending load finishes.
            return
        self._widget.cancel_guided_trace()
        self._start_mode()

    def snapshot(self) -> dict:
        return {
            "container_id": self.container_id,
            "character": self.character,
            "mode": self.mode.value,
            "state": self.state.value,
            "error": self.last_error,
            "trace_summary": self.last_trace_summary,
        }

    def _create(self) -> None:
        if self._widget is not None and self.state == PresenterState.READY_QUIZ:
            self._widget.cancel_guided_trace()
        self._generation += 1
        self._run += 1
        generation = self._generation
        self.state = PresenterState.LOADING
        self.last_error = None

        def loaded() -> None:
            if generation == self._generation:
                self._on_loaded()

        def failed(error: Any) -> None:
            if generation == self._generation:
                self._on_load_failed(error)

        try:
            self._widget = self.factory(
                self.container_id,
                self.character or "",
                self.options.as_widget_options(),
                loaded,
                failed,
            )
        except Exception as exc:
            logger.exception("stroke-order widget init failed for %r", self.character)
            self._widget = None
            self.state = PresenterState.UNINITIALIZED
            self.last_error = str(exc) or exc.__class__.__name__

    def _on_loaded(self) -> None:
        self._start_mode()

    def _on_load_failed(self, error: Any) -> None:
        logger.error("failed to load stroke data for %r: %s", self.character, error)
        self.state = PresenterState.UNINITIALIZED
        self.last_error = str(error) if error else "load failed"

    def _start_mode(self) -> None:
        widget = self._widget
        if widget is None:
            return
        self._run += 1
        run = self._run

        if self.mode == PresentationMode.DEMONSTRATE:
            self.state = PresenterState.READY_DEMONSTRATE
            widget.show_outline()

            def looped() -> None:
                if run == self._run and self.state == PresenterState.READY_DEMONSTRATE:
                    widget.animate(looped, delay_ms=self.options.loop_pause_ms)

            widget.animate(looped)
        else:
            self.state = PresenterState.READY_QUIZ
            widget.hide_outline()

            def traced(summary: dict) -> None:
                if run != self._run:
                    return
                self.last_trace_summary = dict(summary or {})
                if self.on_trace_complete is not None:
                    self.on_trace_complete(self.last_trace_summary)

            widget.start_guided_trace(traced)
