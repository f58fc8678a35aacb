from __future__ import annotations

import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from roster import RosterStore  # noqa: E402
from settings import (  # noqa: E402
    LEGEND_PALETTE,
    Settings,
    baseline_settings,
    current_settings,
    load_settings,
    reset_settings_to_defaults,
    save_settings,
)


def test_missing_file_gives_baseline(tmp_path: Path) -> None:
    assert load_settings(tmp_path / "settings.json") == baseline_settings()


def test_saved_values_are_merged_over_baseline(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "settings.json"
    save_settings({"tip_fee_rate": "0.15"}, target)

    data = load_settings(target)

    assert data["tip_fee_rate"] == "0.15"
    assert data["week_start_day"] == "monday"
    assert current_settings(target).tip_keep_rate == Decimal("0.85")


def test_unreadable_file_falls_back_with_a_warning(tmp_path: Path, caplog) -> None:
    target = tmp_path / "settings.json"
    target.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        data = load_settings(target)

    assert data == baseline_settings()
    assert "Ignoring unreadable settings file" in caplog.text


def test_invalid_values_are_replaced(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        settings = Settings.from_dict({"week_start_day": "Someday", "tip_fee_rate": "1.5", "legend_palette": []})

    assert settings.week_start_day == "monday"
    assert settings.tip_fee_rate == Decimal("0.10")
    assert settings.legend_palette == LEGEND_PALETTE
    assert "Invalid tip_fee_rate" in caplog.text


def test_week_start_day_accepts_short_tokens() -> None:
    assert Settings.from_dict({"week_start_day": "Sun"}).week_start_day == "sunday"
    assert Settings.from_dict({"week_start_day": "mon"}).week_start_day == "monday"
    assert Settings.from_dict({"week_start_day": " Wednesday "}).week_start_day == "wednesday"
    assert Settings.from_dict({"week_start_day": 6}).week_start_day == "sunday"


def test_round_trip_and_reset(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    custom = Settings(week_start_day="sunday", tip_fee_rate=Decimal("0.2"), unknown_label="Former staff")
    save_settings(custom.to_dict(), target)

    assert current_settings(target) == custom
    assert json.loads(target.read_text(encoding="utf-8"))["tip_fee_rate"] == "0.2"

    reset_settings_to_defaults(target)

    assert current_settings(target) == Settings()


def test_fee_rate_reaches_loaded_tip_entries() -> None:
    roster = RosterStore(Settings(tip_fee_rate=Decimal("0.25"))).load(
        people=[{"id": "d1", "name": "Casey", "role": "driver"}],
        stores=[],
        shifts=[],
        tip_entries=[{"id": "t1", "driver_id": "d1", "date": "2024-04-01", "platforms": {"UberEats": "8"}}],
    )

    assert roster.tip_entries[0].adjusted_total == Decimal("6")
    assert roster.person_label("nobody") == "Unknown"
