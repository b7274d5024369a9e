"""
Notification throttle for repeated successes.

Подавление повторных уведомлений: первые ``window`` успехов подряд
уведомляют, следующие ``window`` подавляются, затем одно уведомление
и цикл начинается заново. Любая неудача сбрасывает счётчики.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class NotifyThrottle:
    """Owned by the check loop; not safe for concurrent use."""

    window: int = 5
    _consecutive: int = field(default=0, init=False)
    _suppressed: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.window < 1:
            logger.warning("notify window %s is not positive, using 1", self.window)
            self.window = 1

    @property
    def consecutive(self) -> int:
        return self._consecutive

    @property
    def suppressed(self) -> int:
        return self._suppressed

    @property
    def suppressing(self) -> bool:
        return self._suppressed > 0

    def on_success(self) -> bool:
        """Register a success. Returns True if a notification should go out."""
        self._consecutive += 1

        if self._suppressed > 0:
            self._suppressed += 1
            if self._suppressed > self.window:
                # Период подавления закончился: сбрасываем и уведомляем
                self._reset()
                return True
            return False

        if self._consecutive > self.window:
            # Первые window успехов уже уведомлены, начинаем подавление
            self._suppressed = 1
            return False

        return True

    def on_failure(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._consecutive = 0
        self._suppressed = 0


__all__ = ["NotifyThrottle"]
