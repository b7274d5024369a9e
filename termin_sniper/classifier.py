"""
Page classifier: maps an Observation to an Outcome.

Классификация страницы записи. Эвристика, подобранная под service.berlin.de;
правила меняются только здесь, троттлинг и цикл от них не зависят.
"""

from __future__ import annotations

from typing import Optional

from .models import Observation, Outcome


TOO_MANY_REQUESTS = 429
# body.id страницы "нет свободных терминов"
NO_SLOTS_MARKER = "taken"
# body.id страницы с календарём свободных дней
CALENDAR_MARKER = "dayselect"
# Заголовок страницы техобслуживания ("Wartungsarbeiten")
MAINTENANCE_MARKER = "Wartung"


def is_known_non_success(observation: Observation) -> bool:
    return (
        observation.http_status == TOO_MANY_REQUESTS
        or observation.page_marker == NO_SLOTS_MARKER
        or MAINTENANCE_MARKER in observation.heading_text
    )


def classify(observation: Optional[Observation]) -> Outcome:
    """
    Classify one observation. First matching rule wins.

    ``None`` means the fetch failed before anything could be read.
    Known failure signals dominate the success marker.
    """
    if observation is None:
        return Outcome.TRANSPORT_ERROR
    if is_known_non_success(observation):
        return Outcome.KNOWN_NON_SUCCESS
    if 200 <= observation.http_status < 300 and observation.page_marker == CALENDAR_MARKER:
        return Outcome.SUCCESS
    return Outcome.UNKNOWN_NON_SUCCESS


__all__ = [
    "classify",
    "is_known_non_success",
    "TOO_MANY_REQUESTS",
    "NO_SLOTS_MARKER",
    "CALENDAR_MARKER",
    "MAINTENANCE_MARKER",
]
