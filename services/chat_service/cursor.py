"""
Timestamp cursor and unread counter of one support widget.
"""

from datetime import datetime


class TimestampCursor:
    """Last-seen instant; messages strictly after it count as new"""

    def __init__(self, initial: datetime):
        self._value = initial

    @property
    def value(self) -> datetime:
        return self._value

    def advance(self, now: datetime) -> None:
        # Never move backwards, or already-seen replies would be counted again
        if now > self._value:
            self._value = now


class UnreadCounter:
    """Number of operator replies observed while the widget was hidden"""

    def __init__(self):
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def increment(self) -> int:
        self._count += 1
        return self._count

    def reset(self) -> None:
        self._count = 0
