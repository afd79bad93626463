"""Synchronous publish/subscribe channels."""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    """
    A named notification channel.

    Subscribers are called synchronously, in subscription order, on every
    ``emit``. There is no buffering: late subscribers never see past values.
    A failing subscriber is logged and does not stop delivery to the rest.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, value: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as e:
                logger.warning(
                    "Signal subscriber failed",
                    extra={"event_type": "signal_error", "signal": self.name, "error": str(e)},
                )

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)
