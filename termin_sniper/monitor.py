"""
Check loop for appointment slots.

Цикл проверок:
- одна проверка за тик: страница -> классификация -> троттлинг -> уведомление
- пауза между тиками с немедленной реакцией на остановку
- остановка прерывает и паузу, и текущую навигацию браузера
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from .classifier import classify
from .config import SERVICE_URL
from .models import LoopPhase, MonitorState, Observation, Outcome
from .notifier import build_message
from .throttle import NotifyThrottle

logger = logging.getLogger(__name__)


class ObservationSource(Protocol):
    async def fetch_observation(self) -> Observation: ...

    async def screenshot(self, path: Path) -> None: ...


class NotificationSink(Protocol):
    async def notify(self, message: str) -> bool: ...

    async def send_outbound(self, message: str) -> bool: ...


class StopRequested(Exception):
    """Stop was requested while a check was in flight."""


@dataclass
class MonitorService:
    """High-level monitoring loop. Checks run strictly one after another."""

    browser: ObservationSource
    notifier: NotificationSink
    throttle: NotifyThrottle
    interval: float = 60.0
    always_notify: bool = False
    message: str = field(default_factory=lambda: build_message(SERVICE_URL))
    screenshot_dir: Optional[Path] = None
    _state: MonitorState = field(default_factory=MonitorState)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    _task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def state(self) -> MonitorState:
        return self._state

    def request_stop(self, reason: object = None) -> None:
        """Ask the loop to stop. Safe to call from a signal handler."""
        if reason is not None:
            logger.info("received %s, shutting down", reason)
        self._stop_event.set()

    async def stop(self, timeout: float = 30) -> None:
        self.request_stop()
        if not self._task:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Monitor task did not stop within timeout")
        self._task = None

    async def run(self) -> None:
        """Run checks until a stop is requested or the task is cancelled."""
        self._task = asyncio.current_task()
        self._state.is_running = True
        logger.info("retry interval: %ss, notify window: %d", self.interval, self.throttle.window)
        try:
            while not self._stop_event.is_set():
                try:
                    await self.check_once()
                except StopRequested:
                    logger.info("Stop requested during check, abandoning it")
                    break

                self._state.phase = LoopPhase.SLEEPING
                if await self._wait_for_stop(self.interval):
                    break
        finally:
            self._state.phase = LoopPhase.TERMINATED
            self._state.is_running = False
            logger.info("Monitor stopped after %d checks", self._state.checks_count)

    async def check_once(self) -> Outcome:
        """
        One tick without the trailing wait.

        Raises StopRequested if a stop arrives while the page is loading.
        """
        logger.info("--- checking appointments ---")
        self._state.phase = LoopPhase.CHECKING
        self._state.checks_count += 1
        self._state.last_check_at = datetime.now(timezone.utc)

        try:
            observation = await self._fetch_unless_stopped()
        except StopRequested:
            raise
        except Exception as e:  # noqa: BLE001
            logger.error("error: %s - retrying in %ss", e, self.interval)
            self._state.last_error = str(e) or type(e).__name__
            self.throttle.on_failure()
            self._state.last_outcome = Outcome.TRANSPORT_ERROR
            return Outcome.TRANSPORT_ERROR

        self._state.last_error = None
        outcome = classify(observation)
        self._state.last_outcome = outcome

        if outcome is Outcome.SUCCESS:
            await self._on_success()
        elif outcome is Outcome.KNOWN_NON_SUCCESS:
            logger.info("no slots available, retrying in %ss", self.interval)
            await self._on_non_success()
        else:
            logger.warning(
                "unexpected page (id=%r, status=%d), retrying in %ss",
                observation.page_marker,
                observation.http_status,
                self.interval,
            )
            await self._save_screenshot()
            await self._on_non_success()
        return outcome

    async def _on_success(self) -> None:
        logger.warning("!!! APPOINTMENT FOUND - slots may be available !!!")
        self._state.successes_total += 1
        if self.throttle.on_success():
            await self.notifier.notify(self.message)
            self._state.notifications_sent += 1
        else:
            self._state.notifications_suppressed += 1
            logger.info(
                "notification suppressed (consecutive successes: %d)",
                self.throttle.consecutive,
            )

    async def _on_non_success(self) -> None:
        self.throttle.on_failure()
        if self.always_notify:
            # Проверка канала доставки без звукового сигнала
            await self.notifier.send_outbound(self.message)

    async def _fetch_unless_stopped(self) -> Observation:
        """Fetch an observation, racing it against the stop event."""
        fetch = asyncio.create_task(self.browser.fetch_observation(), name="termin-fetch")
        stopper = asyncio.create_task(self._stop_event.wait(), name="termin-stop-wait")
        try:
            await asyncio.wait({fetch, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (fetch, stopper):
                if not task.done():
                    task.cancel()
            await asyncio.gather(fetch, stopper, return_exceptions=True)

        if fetch.cancelled():
            if self._stop_event.is_set():
                raise StopRequested()
            # Отмена изнутри браузера, а не от оператора: считаем сбоем загрузки
            raise RuntimeError("page fetch was cancelled")
        return fetch.result()

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if a stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _save_screenshot(self) -> None:
        if self.screenshot_dir is None:
            return
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        path = self.screenshot_dir / f"unexpected_page_{stamp}.png"
        try:
            await self.browser.screenshot(path)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to capture screenshot: %s", e)


__all__ = ["MonitorService", "ObservationSource", "NotificationSink", "StopRequested"]
