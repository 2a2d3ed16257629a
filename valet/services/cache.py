"""Single-shot memo for service listings.

Listing every unit is the slowest query a health run makes, and several
checks ask about different services in the same run. The first query fetches
and normalizes the listing; every later query in the same backend instance
reuses that snapshot until `clear()`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .models import ServiceRecord

logger = logging.getLogger(__name__)


class ServiceListCache:
    def __init__(self, fetch: Callable[[], list[ServiceRecord]], label: str = "services") -> None:
        self._fetch = fetch
        self._label = label
        self._records: tuple[ServiceRecord, ...] | None = None

    @property
    def populated(self) -> bool:
        return self._records is not None

    def get(self) -> tuple[ServiceRecord, ...]:
        if self._records is None:
            self._records = tuple(self._fetch())
            logger.debug("Cached %d %s", len(self._records), self._label)
        return self._records

    def clear(self) -> None:
        self._records = None
