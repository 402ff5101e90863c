"""
Transient user-facing notices.

The chat core reports outcomes (new operator reply, failed send, deleted
conversation) through a Notifier; rendering is left to the host app.
"""

from abc import ABC, abstractmethod
from typing import Optional

import streamlit as st

from infrastructure.monitoring.logging_service import get_logger


class Notifier(ABC):
    """Sink for short-lived notices"""

    @abstractmethod
    def info(self, message: str, icon: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def success(self, message: str) -> None:
        ...

    @abstractmethod
    def error(self, message: str) -> None:
        ...


class StreamlitNotifier(Notifier):
    """Shows notices as Streamlit toasts"""

    def __init__(self):
        self.logger = get_logger(__name__)

    def _toast(self, message: str, icon: Optional[str]) -> None:
        try:
            st.toast(message, icon=icon)
        except Exception as e:
            # Outside a running Streamlit script there is nowhere to draw
            self.logger.warning(f"Could not show notice '{message}': {e}")

    def info(self, message: str, icon: Optional[str] = None) -> None:
        self._toast(message, icon or "💬")

    def success(self, message: str) -> None:
        self._toast(message, "✅")

    def error(self, message: str) -> None:
        self._toast(message, "🚨")
