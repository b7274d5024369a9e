"""
Config loading via Pydantic v2, python-dotenv and a YAML config file.

Загрузка конфигурации: config.yaml, переменные окружения (.env) и флаги CLI.
После старта настройки не меняются.
"""

from __future__ import annotations

import logging
import math
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

# Явно загружаем переменные окружения из .env, если файл существует
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)

logger = logging.getLogger(__name__)


SERVICE_URL = "https://service.berlin.de/dienstleistung/351180/"
TARGET_URL = (
    "https://service.berlin.de/terminvereinbarung/termin/tag.php"
    "?id=4126&anliegen[]=351180&termin=1&dienstleister=351636&anliegen[]=351180"
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_CONFIG_PATH = Path("config.yaml")


class ConfigurationError(Exception):
    """Config file is missing, unreadable or malformed."""


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """
    Parse an interval like ``20s``, ``1m``, ``2m30s`` or ``1h`` into seconds.

    A bare number is taken as seconds. Raises ValueError for anything else
    and for non-positive durations.
    """
    value = text.strip().lower()
    if not value:
        raise ValueError("empty duration")

    try:
        seconds = float(value)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(value):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(value):
            raise ValueError(f"invalid duration: {text!r}") from None

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {text!r}")
    return seconds


class BrowserConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_url: str = SERVICE_URL
    target_url: str = TARGET_URL
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_ms: int = Field(default=60000, ge=1000)


class MonitorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    check_interval: float = Field(default=60.0, gt=0)
    notify_window: int = 5
    always_notify: bool = False
    screenshot_dir: Optional[Path] = None

    @field_validator("check_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> Any:
        # В YAML интервал можно задать как "1m" или "2m30s"
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("notify_window")
    @classmethod
    def _clamp_window(cls, value: int) -> int:
        if value < 1:
            logger.warning("config: notify_window %s is not positive, using 1", value)
            return 1
        return value


class NotifyConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_url: Optional[str] = None
    webhook_timeout: float = Field(default=10.0, gt=0)
    # Telegram-канал необязателен: нужны оба значения
    bot_token: str = ""
    admin_chat_id: int = 0

    @field_validator("webhook_url")
    @classmethod
    def _check_scheme(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning(
                "config: webhook_url %r is not a valid http/https URL - webhook disabled", value
            )
            return None
        return value

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.bot_token and self.admin_chat_id)


class LoggingConfig(BaseModel):
    logs_dir: Path = Field(default_factory=lambda: BASE_DIR / "logs")
    log_level: str = Field(default="INFO")
    max_bytes: int = Field(default=5 * 1024 * 1024)  # 5 MB
    backup_count: int = Field(default=5)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    browser: BrowserConfig = BrowserConfig()
    monitor: MonitorConfig = MonitorConfig()
    notify: NotifyConfig = NotifyConfig()
    logging: LoggingConfig = LoggingConfig()


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def logging_config_from_env(env: Mapping[str, str] | None = None) -> LoggingConfig:
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}
    if env.get("LOG_LEVEL"):
        values["log_level"] = env["LOG_LEVEL"]
    if env.get("LOGS_DIR"):
        values["logs_dir"] = Path(env["LOGS_DIR"])
    return LoggingConfig(**values)


def load_config_file(path: str | Path) -> Dict[str, Any]:
    """
    Read the YAML config file.

    Raises ConfigurationError if the file cannot be read or is not a mapping.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(
    config_path: str | Path = DEFAULT_CONFIG_PATH,
    *,
    check_interval: Optional[float] = None,
    notify_window: Optional[int] = None,
    always_notify: Optional[bool] = None,
    headless: Optional[bool] = None,
    screenshot_dir: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Build settings from the config file, the environment and CLI overrides.

    An unusable config file is logged once and the run continues with
    outbound notifications disabled.
    """
    env = os.environ if env is None else env

    try:
        file_cfg = load_config_file(config_path)
    except ConfigurationError as exc:
        logger.warning("config: not loaded (%s) - webhook disabled", exc)
        file_cfg = {}

    monitor_values: Dict[str, Any] = {}
    for key in ("check_interval", "notify_window", "always_notify"):
        if file_cfg.get(key) is None:
            continue
        try:
            MonitorConfig(**{key: file_cfg[key]})
        except ValidationError as exc:
            logger.warning("config: ignoring invalid %s in %s (%s)", key, config_path, exc)
            continue
        monitor_values[key] = file_cfg[key]
    if check_interval is not None:
        monitor_values["check_interval"] = check_interval
    if notify_window is not None:
        monitor_values["notify_window"] = notify_window
    if always_notify is not None:
        monitor_values["always_notify"] = always_notify
    if screenshot_dir is not None:
        monitor_values["screenshot_dir"] = screenshot_dir

    browser_values: Dict[str, Any] = {}
    if env.get("HEADLESS"):
        browser_values["headless"] = _to_bool(env["HEADLESS"])
    if headless is not None:
        browser_values["headless"] = headless

    try:
        admin_chat_id = int(env.get("ADMIN_CHAT_ID", "0") or "0")
    except ValueError:
        logger.warning("config: ADMIN_CHAT_ID %r is not an integer - telegram disabled", env.get("ADMIN_CHAT_ID"))
        admin_chat_id = 0

    try:
        notify = NotifyConfig(
            webhook_url=file_cfg.get("webhook_url"),
            bot_token=env.get("BOT_TOKEN", "").strip(),
            admin_chat_id=admin_chat_id,
        )
    except ValidationError as exc:
        logger.warning("config: notification settings invalid (%s) - notifications disabled", exc)
        notify = NotifyConfig()

    # Ошибки в параметрах цикла пробрасываем: без них запуск не имеет смысла
    return Settings(
        browser=BrowserConfig(**browser_values),
        monitor=MonitorConfig(**monitor_values),
        notify=notify,
        logging=logging_config_from_env(env),
    )


__all__ = [
    "BASE_DIR",
    "SERVICE_URL",
    "TARGET_URL",
    "parse_duration",
    "ConfigurationError",
    "BrowserConfig",
    "MonitorConfig",
    "NotifyConfig",
    "LoggingConfig",
    "Settings",
    "load_config_file",
    "load_settings",
    "logging_config_from_env",
]
