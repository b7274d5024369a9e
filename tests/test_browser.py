from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from termin_sniper.browser import ServiceBerlinBrowser, StatusCell
from termin_sniper.config import SERVICE_URL, TARGET_URL, BrowserConfig


def _response(status: int, resource_type: str = "document") -> SimpleNamespace:
    return SimpleNamespace(status=status, request=SimpleNamespace(resource_type=resource_type))


class FakeLocator:
    def __init__(self, texts: List[str]) -> None:
        self._texts = texts

    async def count(self) -> int:
        return len(self._texts)

    @property
    def first(self) -> SimpleNamespace:
        return SimpleNamespace(inner_text=AsyncMock(return_value=self._texts[0]))


class FakePage:
    """Plays back scripted responses on every goto()."""

    def __init__(
        self,
        responses: List[List[SimpleNamespace]],
        marker: str = "",
        headings: Optional[Dict[str, List[str]]] = None,
        final_url: Optional[str] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self._responses = list(responses)
        self._marker = marker
        self._headings = headings or {}
        self._final_url = final_url
        self._fail_on = fail_on
        self.handlers: list = []
        self.visited: List[str] = []
        self.url = "about:blank"

    def on(self, event: str, handler) -> None:
        assert event == "response"
        self.handlers.append(handler)

    def remove_listener(self, event: str, handler) -> None:
        self.handlers.remove(handler)

    async def goto(self, url: str, **kwargs) -> None:
        self.visited.append(url)
        if url == self._fail_on:
            raise TimeoutError("Timeout 60000ms exceeded")
        for response in self._responses.pop(0):
            for handler in list(self.handlers):
                handler(response)
        self.url = self._final_url if url == TARGET_URL and self._final_url else url

    async def evaluate(self, script: str) -> str:
        return self._marker

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self._headings.get(selector, []))


def _browser(page: FakePage) -> ServiceBerlinBrowser:
    browser = ServiceBerlinBrowser(BrowserConfig())
    browser._ensure_browser = AsyncMock()  # type: ignore[method-assign]
    browser._page = page  # type: ignore[assignment]
    return browser


def test_status_cell_keeps_last_value() -> None:
    cell = StatusCell()
    assert cell.load() == 0
    cell.store(302)
    cell.store(200)
    assert cell.load() == 200


def test_page_before_start_raises() -> None:
    with pytest.raises(RuntimeError):
        ServiceBerlinBrowser().page


@pytest.mark.asyncio
async def test_fetch_reads_status_marker_heading_and_location() -> None:
    page = FakePage(
        responses=[
            [_response(200)],
            [_response(302), _response(200), _response(404, resource_type="image")],
        ],
        marker="dayselect",
        headings={"h2": ["  Bitte wählen Sie ein Datum \n"]},
        final_url="https://service.berlin.de/terminvereinbarung/termin/day/",
    )

    observation = await _browser(page).fetch_observation()

    assert page.visited == [SERVICE_URL, TARGET_URL]
    assert observation.http_status == 200
    assert observation.page_marker == "dayselect"
    assert observation.heading_text == "Bitte wählen Sie ein Datum"
    assert observation.current_location == "https://service.berlin.de/terminvereinbarung/termin/day/"
    assert page.handlers == []


@pytest.mark.asyncio
async def test_fetch_falls_back_to_h1_heading() -> None:
    page = FakePage(
        responses=[[_response(200)], [_response(429)]],
        headings={"h2": ["   "], "h1": ["Too Many Requests"]},
    )

    observation = await _browser(page).fetch_observation()

    assert observation.http_status == 429
    assert observation.heading_text == "Too Many Requests"
    assert observation.page_marker == ""


@pytest.mark.asyncio
async def test_fetch_without_document_response_reports_zero() -> None:
    page = FakePage(responses=[[], [_response(200, resource_type="script")]], marker="taken")

    observation = await _browser(page).fetch_observation()

    assert observation.http_status == 0
    assert observation.page_marker == "taken"


@pytest.mark.asyncio
async def test_navigation_error_propagates_and_detaches_listener() -> None:
    page = FakePage(responses=[[_response(200)]], fail_on=TARGET_URL)

    with pytest.raises(TimeoutError):
        await _browser(page).fetch_observation()
    assert page.handlers == []


class FakeDriver:
    """Stands in for the Playwright driver; Chromium never launches."""

    def __init__(self) -> None:
        self.stop = AsyncMock()
        self.chromium = SimpleNamespace(launch=AsyncMock(side_effect=RuntimeError("Executable doesn't exist")))


@pytest.mark.asyncio
async def test_failed_launch_stops_driver_every_time(monkeypatch) -> None:
    drivers: List[FakeDriver] = []

    def fake_async_playwright() -> SimpleNamespace:
        driver = FakeDriver()
        drivers.append(driver)
        return SimpleNamespace(start=AsyncMock(return_value=driver))

    monkeypatch.setattr("termin_sniper.browser.async_playwright", fake_async_playwright)
    browser = ServiceBerlinBrowser(BrowserConfig())

    for _ in range(3):
        with pytest.raises(RuntimeError, match="Executable"):
            await browser.fetch_observation()
    await browser.close()

    assert len(drivers) == 3
    assert all(driver.stop.await_count == 1 for driver in drivers)
    with pytest.raises(RuntimeError, match="not initialised"):
        browser.page
