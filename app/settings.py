from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from clock import to_decimal
from week_window import WEEKDAY_NAMES, weekday_index


logger = logging.getLogger(__name__)

DATA_DIR = Path(os.getenv("SHIFTBOOK_DATA_DIR") or Path(__file__).resolve().parent / "data")
SETTINGS_FILE = DATA_DIR / "settings.json"

LEGEND_PALETTE: Tuple[str, ...] = (
    "#fed7aa",
    "#bfdbfe",
    "#bbf7d0",
    "#fef08a",
    "#fecaca",
    "#fbcfe8",
    "#c7d2fe",
    "#e5e7eb",
    "#e9d5ff",
    "#99f6e4",
)


def baseline_settings() -> Dict[str, Any]:
    return {
        "week_start_day": "monday",
        "tip_fee_rate": "0.10",
        "unknown_label": "Unknown",
        "legend_palette": list(LEGEND_PALETTE),
    }


@dataclass(frozen=True)
class Settings:
    week_start_day: str = "monday"
    tip_fee_rate: Decimal = Decimal("0.10")
    unknown_label: str = "Unknown"
    legend_palette: Tuple[str, ...] = LEGEND_PALETTE

    @property
    def tip_keep_rate(self) -> Decimal:
        return Decimal("1") - self.tip_fee_rate

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        baseline = baseline_settings()
        raw_day = data.get("week_start_day")
        if raw_day in (None, ""):
            raw_day = baseline["week_start_day"]
        try:
            day = WEEKDAY_NAMES[weekday_index(raw_day)]
        except (TypeError, ValueError, AttributeError):
            logger.warning("Unknown week_start_day %r; using %s", raw_day, baseline["week_start_day"])
            day = baseline["week_start_day"]
        try:
            fee = to_decimal(data.get("tip_fee_rate"), default=Decimal(baseline["tip_fee_rate"]))
        except ValueError:
            fee = None
        if fee is None or fee < 0 or fee > 1:
            logger.warning("Invalid tip_fee_rate %r; using %s", data.get("tip_fee_rate"), baseline["tip_fee_rate"])
            fee = Decimal(baseline["tip_fee_rate"])
        palette = data.get("legend_palette")
        if not isinstance(palette, (list, tuple)) or not palette:
            palette = baseline["legend_palette"]
        return cls(
            week_start_day=day,
            tip_fee_rate=fee,
            unknown_label=str(data.get("unknown_label") or baseline["unknown_label"]),
            legend_palette=tuple(str(color) for color in palette),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_start_day": self.week_start_day,
            "tip_fee_rate": str(self.tip_fee_rate),
            "unknown_label": self.unknown_label,
            "legend_palette": list(self.legend_palette),
        }


DEFAULT_SETTINGS = Settings()


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or SETTINGS_FILE
    if target.exists():
        try:
            data = json.loads(target.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings file must hold a JSON object")
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", target, exc)
            data = baseline_settings()
    else:
        data = baseline_settings()

    for key, default in baseline_settings().items():
        data.setdefault(key, default)
    return data


def save_settings(data: Dict[str, Any], path: Optional[Path] = None) -> Path:
    target = path or SETTINGS_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
    return target


def current_settings(path: Optional[Path] = None) -> Settings:
    return Settings.from_dict(load_settings(path))


def reset_settings_to_defaults(path: Optional[Path] = None) -> None:
    save_settings(baseline_settings(), path)
