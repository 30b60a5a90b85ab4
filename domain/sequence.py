"""Order number allocation."""
from __future__ import annotations

import threading
from datetime import datetime, timezone, tzinfo
from typing import Callable
from zoneinfo import ZoneInfo

DEFAULT_PREFIX = "ORD"
DATE_KEY_FORMAT = "%Y%m%d"
COUNTER_WIDTH = 5


class SequenceAllocator:
    """Issues order numbers of the form ``PREFIX-YYYYMMDD-NNNNN``.

    The counter restarts at 1 whenever the date key (computed in the
    reference timezone) changes. All state lives on the instance and is
    guarded by one lock, so concurrent callers always receive distinct,
    gapless values. Past 99999 orders in a day the counter field simply
    widens; numbers stay unique and increasing.

    A fresh instance knows nothing about numbers issued before it started;
    callers seed it with ``advance_to`` from the last stored number.
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        tz: tzinfo | str = timezone.utc,
        clock: Callable[[], datetime] | None = None,
    ):
        self.prefix = prefix
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._current_date_key = ""
        self._counter = 0

    def date_key(self) -> str:
        """Date key for the current instant in the reference timezone."""
        return self._clock().astimezone(self.tz).strftime(DATE_KEY_FORMAT)

    def number_prefix(self, date_key: str) -> str:
        return f"{self.prefix}-{date_key}-"

    def is_seeded_for(self, date_key: str) -> bool:
        with self._lock:
            return self._current_date_key == date_key

    def advance_to(self, date_key: str, counter: int) -> None:
        """Make the next number for ``date_key`` follow ``counter``.

        Never moves backwards: an older date key is ignored and, for the
        current key, the larger counter wins.
        """
        with self._lock:
            if date_key < self._current_date_key:
                return
            if date_key == self._current_date_key:
                self._counter = max(self._counter, counter)
            else:
                self._current_date_key = date_key
                self._counter = counter

    def next(self) -> str:
        with self._lock:
            date_key = self.date_key()
            if date_key != self._current_date_key:
                self._current_date_key = date_key
                self._counter = 0
            self._counter += 1
            counter = self._counter
        return f"{self.number_prefix(date_key)}{counter:0{COUNTER_WIDTH}d}"

    @property
    def current(self) -> tuple[str, int]:
        with self._lock:
            return self._current_date_key, self._counter


def parse_counter(order_number: str) -> int:
    """Counter part of ``PREFIX-YYYYMMDD-NNNNN``."""
    counter = order_number.rsplit("-", 1)[-1]
    if not counter.isdigit():
        raise ValueError(f"Not an allocated order number: {order_number!r}")
    return int(counter)
