from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
TEMPLATES_DIR = PROJECT_ROOT / "templates"
STATIC_DIR = PROJECT_ROOT / "static"

INITIAL_CHARACTER = "永"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class CanvasStyle:
    width: int = 300
    height: int = 300
    ink_color: str = "#1a1a1a"
    line_width: float = 12.0
    blur_radius: float = 1.0


@dataclass(frozen=True)
class PresenterOptions:
    width: int = 300
    height: int = 300
    padding: int = 20
    show_outline: bool = True
    stroke_animation_speed: float = 1.0
    delay_between_strokes: int = 500
    stroke_color: str = "#333333"
    radical_color: str = "#166534"
    loop_pause_ms: int = 2000

    def as_widget_options(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "padding": self.padding,
            "showOutline": self.show_outline,
            "strokeAnimationSpeed": self.stroke_animation_speed,
            "delayBetweenStrokes": self.delay_between_strokes,
            "strokeColor": self.stroke_color,
            "radicalColor": self.radical_color,
        }


def configure_logging() -> None:
    level_name = os.getenv("MOYUN_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
