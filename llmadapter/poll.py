"""Round-robin selection over a pool of values with per-value state."""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
import time
from dataclasses import dataclass
from itertools import chain
from typing import Any, Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

READY = 0
IN_USE = 1
FAULTED = 2

_WAIT_TIMEOUT = 10.0
_RESET_LOCK_TIMEOUT = 20.0
_TIMER_INTERVAL = 10.0

log = logging.getLogger("llmadapter.poll")


class PollError(Exception):
    """Raised when no value can be handed out."""


@dataclass
class _State:
    t: float
    s: int


def _encode(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if hasattr(obj, "__dict__"):
        return vars(obj)
    return str(obj)


def _marker_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    return json.dumps(key, default=_encode, sort_keys=True,
                      separators=(",", ":"), ensure_ascii=False)


class PollContainer(Generic[T]):
    """Hands out values in turn; states are READY, IN_USE or FAULTED.

    Values that are not READY return to READY ``reset_time`` seconds after
    they were marked, by a background timer or an explicit ``reset_expired``.
    """

    def __init__(self, name: str, items: Iterable[T], reset_time: float = 0.0,
                 condition: Callable[[T], bool] | None = None,
                 clock: Callable[[], float] = time.monotonic,
                 autostart: bool = True):
        self.name = name
        self.condition = condition
        self.reset_time = reset_time
        self._items: list[T] = list(items)
        self._pos = 0
        self._markers: dict[str, _State] = {}
        self._clock = clock
        self._mu = threading.RLock()
        self._cmu = threading.RLock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        if reset_time > 0 and autostart:
            self._thread = threading.Thread(target=self._run, name=f"poll-{name}", daemon=True)
            self._thread.start()

    def __len__(self) -> int:
        return len(self._items)

    def __enter__(self) -> "PollContainer[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _run(self) -> None:
        while not self._stopped.is_set():
            if self._items:
                try:
                    self.reset_expired()
                except TimeoutError:
                    log.error("[%s] PollContainer failed to acquire lock", self.name)
            self._stopped.wait(_TIMER_INTERVAL)

    def close(self) -> None:
        """Stop the background reset timer."""
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def reset_expired(self) -> list[T]:
        """Return values whose state outlived ``reset_time`` to READY."""
        if not self._mu.acquire(timeout=_RESET_LOCK_TIMEOUT):
            raise TimeoutError("lock timeout")
        try:
            reset: list[T] = []
            deadline = self._clock() - self.reset_time
            for value in self._items:
                key = _marker_key(value)
                marker = self._markers.get(key)
                if marker is None or marker.s == READY:
                    continue
                if deadline > marker.t:
                    marker.s = READY
                    reset.append(value)
                    log.info("[%s] PollContainer cooled down: %s", self.name, key)
            return reset
        finally:
            self._mu.release()

    def poll(self) -> T:
        """Return the next value accepted by ``condition`` and mark it IN_USE."""
        if not self._items:
            raise PollError("no elements in slice")
        if self.condition is None:
            raise PollError("condition is nil")
        if not self._cmu.acquire(timeout=_WAIT_TIMEOUT):
            raise PollError("lock timeout")
        try:
            size = len(self._items)
            if self._pos >= size:
                self._pos = 0
            start = self._pos
            for index in chain(range(start, size), range(start)):
                value = self._items[index]
                if self.condition(value):
                    self._pos = index + 1
                    self.mark_to(value, IN_USE)
                    return value
            raise PollError("not roll result")
        finally:
            self._cmu.release()

    def remove(self, value: T) -> None:
        """Remove the first item equal to ``value``, if any."""
        if not self._items:
            return
        if not self._cmu.acquire(timeout=_WAIT_TIMEOUT):
            raise PollError("lock timeout")
        try:
            if value in self._items:
                self._items.remove(value)
        finally:
            self._cmu.release()

    def add(self, value: T) -> None:
        self._items.append(value)

    def mark_to(self, key: Any, value: int) -> None:
        """Record state ``value`` for ``key`` as of now."""
        marker_key = _marker_key(key)
        if not self._mu.acquire(timeout=_WAIT_TIMEOUT):
            raise TimeoutError("lock timeout")
        try:
            self._markers[marker_key] = _State(self._clock(), value)
            if value == IN_USE:
                log.info("[%s] index [%d] set state: %d", self.name, self._pos, value)
            else:
                log.info("[%s] set state: %d", self.name, value)
        finally:
            self._mu.release()

    def marked(self, key: Any) -> int:
        """The recorded state for ``key``, READY when none was recorded."""
        marker_key = _marker_key(key)
        if not self._mu.acquire(timeout=_WAIT_TIMEOUT):
            raise TimeoutError("lock timeout")
        try:
            marker = self._markers.get(marker_key)
            return READY if marker is None else marker.s
        finally:
            self._mu.release()