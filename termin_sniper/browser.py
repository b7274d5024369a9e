"""
Playwright-based browser for service.berlin.de.

Browser-модуль на Playwright: одна постоянная сессия Chromium на весь
процесс, каждая проверка открывает стартовую страницу, затем страницу
с календарём, и читает статус ответа, body.id и заголовок.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    async_playwright,
)

from .config import BrowserConfig
from .models import Observation

logger = logging.getLogger(__name__)


class StatusCell:
    """
    Holds the status of the last document response seen during one fetch.

    Written by the response listener, read once after navigation finishes.
    Both run on the event loop thread, so no lock is needed. Create a new
    cell for every fetch.
    """

    def __init__(self) -> None:
        self._status = 0

    def store(self, status: int) -> None:
        self._status = status

    def load(self) -> int:
        return self._status


class ServiceBerlinBrowser:
    """
    High-level wrapper around Playwright to read the appointment page.
    """

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Browser not initialised")
        return self._page

    async def _ensure_browser(self) -> None:
        """Start Playwright and open the shared page on first use."""
        if self._browser and self._browser.is_connected():
            return
        if self._browser:
            logger.warning("Browser disconnected, starting a new one")
            await self.close()

        logger.info("Starting Playwright browser (headless=%s)", self._config.headless)
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self._config.headless)
            self._context = await self._browser.new_context(user_agent=self._config.user_agent)
            self._page = await self._context.new_page()
            self._page.set_default_timeout(self._config.navigation_timeout_ms)
        except BaseException:
            # Не оставляем драйвер Playwright висеть после неудачного запуска
            await self.close()
            raise

    async def close(self) -> None:
        """Close page, context, browser and Playwright. Safe to call twice."""
        if self._browser or self._playwright:
            logger.info("Closing Playwright browser")
        try:
            if self._page:
                await self._page.close()
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except Exception as e:  # noqa: BLE001
            logger.warning("Error while closing browser: %s", e)
        finally:
            if self._playwright:
                await self._playwright.stop()
            self._playwright = None
            self._browser = None
            self._context = None
            self._page = None

    async def fetch_observation(self) -> Observation:
        """
        Visit the entry page, then the target page, and read what is shown.

        Errors from Playwright (timeouts, network failures) propagate.
        Cancelling the awaiting task aborts the navigation in progress.
        """
        await self._ensure_browser()
        page = self.page
        cell = StatusCell()

        def on_response(response: Response) -> None:
            if response.request.resource_type == "document":
                cell.store(response.status)

        page.on("response", on_response)
        try:
            timeout = self._config.navigation_timeout_ms
            await page.goto(self._config.entry_url, wait_until="domcontentloaded", timeout=timeout)
            await page.goto(self._config.target_url, wait_until="domcontentloaded", timeout=timeout)
            marker = await page.evaluate("() => document.body ? document.body.id : ''")
            location = page.url
            heading = await self._read_heading(page)
        finally:
            page.remove_listener("response", on_response)

        observation = Observation(
            http_status=cell.load(),
            page_marker=marker or "",
            heading_text=heading,
            current_location=location,
        )
        logger.info(
            "status=%d body.id=%r url=%s",
            observation.http_status,
            observation.page_marker,
            observation.current_location,
        )
        if observation.heading_text:
            logger.info("headline: %r", observation.heading_text)
        return observation

    async def _read_heading(self, page: Page) -> str:
        """Text of the first h2, or of the first h1 if there is no h2 text."""
        for selector in ("h2", "h1"):
            locator = page.locator(selector)
            try:
                if await locator.count() == 0:
                    continue
                text = (await locator.first.inner_text()).strip()
            except Exception as e:  # noqa: BLE001
                logger.debug("Could not read %s: %s", selector, e)
                continue
            if text:
                return text
        return ""

    async def screenshot(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path), full_page=True)
        logger.info("Screenshot saved: %s", path)


__all__ = ["ServiceBerlinBrowser", "StatusCell"]
