"""
Command-line entrypoint.

Точка входа: разбор флагов, загрузка настроек, запуск цикла проверок
и корректное завершение по SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional, Sequence

from .browser import ServiceBerlinBrowser
from .config import (
    DEFAULT_CONFIG_PATH,
    Settings,
    load_settings,
    logging_config_from_env,
    parse_duration,
)
from .monitor import MonitorService
from .notifier import Notifier, build_message
from .throttle import NotifyThrottle
from .utils import setup_logging


logger = logging.getLogger(__name__)


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termin-sniper",
        description="Watch the Berlin service portal for free appointments.",
    )
    parser.add_argument(
        "--interval",
        type=_duration,
        default=None,
        help="retry interval (e.g. 20s, 1m, 2m30s); default 1m",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="path to config file (default: %(default)s)",
    )
    parser.add_argument(
        "--always-call-webhook",
        action="store_true",
        default=None,
        help="call webhook on every check (useful for testing)",
    )
    parser.add_argument(
        "--notify-window",
        type=int,
        default=None,
        help=(
            "suppress notifications after this many consecutive successes; "
            "re-notify after the same count (default 5)"
        ),
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="show the browser window",
    )
    parser.add_argument(
        "--screenshots",
        type=Path,
        default=None,
        metavar="DIR",
        help="save a screenshot of every unexpected page into DIR",
    )
    return parser


def _install_signal_handlers(monitor: MonitorService) -> list[signal.Signals]:
    """Route SIGINT/SIGTERM to ``monitor.request_stop``. Returns installed signals."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            # Windows: остаётся KeyboardInterrupt, который отменит задачу
            logger.debug("Signal handlers not supported, relying on KeyboardInterrupt")
            break
        installed.append(sig)
    return installed


async def run(settings: Settings) -> None:
    browser = ServiceBerlinBrowser(settings.browser)
    notifier = Notifier(settings.notify)
    monitor = MonitorService(
        browser=browser,
        notifier=notifier,
        throttle=NotifyThrottle(settings.monitor.notify_window),
        interval=settings.monitor.check_interval,
        always_notify=settings.monitor.always_notify,
        message=build_message(settings.browser.entry_url),
        screenshot_dir=settings.monitor.screenshot_dir,
    )
    installed = _install_signal_handlers(monitor)
    try:
        await monitor.run()
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await browser.close()
        await notifier.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point for the ``termin-sniper`` command."""
    args = build_parser().parse_args(argv)
    setup_logging(logging_config_from_env())

    settings = load_settings(
        args.config,
        check_interval=args.interval,
        notify_window=args.notify_window,
        always_notify=args.always_call_webhook,
        headless=False if args.headful else None,
        screenshot_dir=args.screenshots,
    )
    if settings.notify.webhook_url:
        logger.info("config: webhook -> %s", settings.notify.webhook_url)
    if settings.notify.telegram_enabled:
        logger.info("config: telegram -> chat %s", settings.notify.admin_chat_id)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Stopped by user")


if __name__ == "__main__":
    main()
