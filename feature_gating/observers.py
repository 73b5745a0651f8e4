"""
Thread-safe observer registry used by the engine's collaborators.
"""

import threading
from typing import Any, Callable, List


class ObserverSet:
    """A set of callables notified synchronously, in registration order."""

    def __init__(self):
        self._observers: List[Callable[..., None]] = []
        self._lock = threading.Lock()

    def add(self, observer: Callable[..., None]) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove(self, observer: Callable[..., None]) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def notify(self, *args: Any) -> None:
        # Snapshot so observers may unregister themselves while being called.
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(*args)

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)
