"""Pytest configuration and fixtures."""
from __future__ import annotations

from pathlib import Path
from typing import List, Union
from unittest.mock import AsyncMock

import pytest

from termin_sniper.models import Observation


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    """Keep a developer's .env out of the tests."""
    for name in ("BOT_TOKEN", "ADMIN_CHAT_ID", "HEADLESS", "LOG_LEVEL", "LOGS_DIR"):
        monkeypatch.delenv(name, raising=False)


class FakeBrowser:
    """Returns scripted observations; the last one repeats forever."""

    def __init__(self, results: List[Union[Observation, BaseException]]) -> None:
        self.results = list(results)
        self.calls = 0
        self.screenshot = AsyncMock()

    async def fetch_observation(self) -> Observation:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeNotifier:
    def __init__(self) -> None:
        self.notify = AsyncMock(return_value=True)
        self.send_outbound = AsyncMock(return_value=True)


@pytest.fixture
def slots_page() -> Observation:
    return Observation(
        http_status=200,
        page_marker="dayselect",
        heading_text="Bitte wählen Sie ein Datum",
        current_location="https://service.berlin.de/terminvereinbarung/termin/day/",
    )


@pytest.fixture
def taken_page() -> Observation:
    return Observation(
        http_status=200,
        page_marker="taken",
        heading_text="Leider sind aktuell keine Termine für ihre Auswahl verfügbar.",
        current_location="https://service.berlin.de/terminvereinbarung/termin/taken/",
    )


@pytest.fixture
def unknown_page() -> Observation:
    return Observation(http_status=200, page_marker="", heading_text="Seite nicht gefunden")


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def screenshot_dir(tmp_path: Path) -> Path:
    return tmp_path / "shots"
