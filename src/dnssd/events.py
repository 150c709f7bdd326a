from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Subscription:
    """Brief: Unsubscribe token returned by EventHook.subscribe().

    Inputs:
      - hook: EventHook the listener was registered on.
      - listener: Registered callable.

    Outputs:
      - Subscription instance; cancel() detaches the listener once.
    """

    def __init__(self, hook: "EventHook", listener: Listener) -> None:
        self._hook = hook
        self._listener = listener
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> bool:
        """Brief: Detach the listener from its hook.

        Inputs:
          - None.

        Outputs:
          - bool: True the first time, False on every later call.
        """

        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._hook._remove(self)
        return True


class EventHook:
    """Brief: Thread-safe listener registry for transport and discovery events.

    Inputs:
      - name: Label used in log messages (for example "query_received").

    Outputs:
      - EventHook instance.

    Notes:
      - fire() iterates over a snapshot, so listeners may subscribe or cancel
        from inside a callback.
      - A failing listener is logged and skipped; the remaining listeners
        still run.
    """

    def __init__(self, name: str = "event") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._listeners: List[Tuple[Subscription, Listener]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def subscribe(self, listener: Listener) -> Subscription:
        if not callable(listener):
            raise TypeError(f"{self.name}: listener must be callable")
        sub = Subscription(self, listener)
        with self._lock:
            self._listeners.append((sub, listener))
        return sub

    def _remove(self, sub: Subscription) -> None:
        # Match the token, not the callable: one function may be subscribed twice.
        with self._lock:
            self._listeners = [entry for entry in self._listeners if entry[0] is not sub]

    def fire(self, *args: Any) -> int:
        """Brief: Invoke every listener with the given arguments.

        Inputs:
          - *args: Positional arguments forwarded to each listener.

        Outputs:
          - int: Number of listeners that returned without raising.
        """

        with self._lock:
            snapshot = [listener for _sub, listener in self._listeners]

        ok = 0
        for listener in snapshot:
            try:
                listener(*args)
                ok += 1
            except Exception:
                logger.exception("%s listener %r failed", self.name, listener)
        return ok

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

