"""
UI service - notices surfaced to the end user and the operator.
"""

from .notifier import Notifier, StreamlitNotifier

__all__ = [
    'Notifier',
    'StreamlitNotifier'
]
