"""
Test doubles shared by the support chat tests
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from services.ui_service.notifier import Notifier


class TickingClock:
    """Deterministic clock that moves forward a millisecond on every read"""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current


class RecordingNotifier(Notifier):
    """Notifier that keeps every notice for assertions"""

    def __init__(self):
        self.notices: List[Tuple[str, str]] = []

    def info(self, message: str, icon: Optional[str] = None) -> None:
        self.notices.append(("info", message))

    def success(self, message: str) -> None:
        self.notices.append(("success", message))

    def error(self, message: str) -> None:
        self.notices.append(("error", message))

    def messages(self, level: str) -> List[str]:
        return [message for kind, message in self.notices if kind == level]


async def drain(rounds: int = 50) -> None:
    """Let pending subscription opens and snapshot callbacks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)
