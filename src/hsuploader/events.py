"""Minimal observer registration used by the watchers.

Handlers run synchronously on the thread that emits, in registration order.
A failing handler is logged and skipped so it can never kill a polling loop.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Signal:
    """A named list of callbacks.

    Example:
        found = Signal("log_found")
        found.connect(lambda name: print(name))
        found.emit("Power")
    """

    def __init__(self, name: str, log: Optional[logging.Logger] = None) -> None:
        self.name = name
        self._log = log or logger
        self._handlers: list[Callable[..., None]] = []
        self._lock = threading.Lock()

    def connect(self, handler: Callable[..., None]) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def disconnect(self, handler: Callable[..., None]) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, *args) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                self._log.error(f"Handler error for {self.name}: {e}", exc_info=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
