"""Short-lived cache of initialized service clients."""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from .errors import UnknownServiceError
from .services import ServiceName, StubFactory, close_stub

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_MAX_SIZE = 1000


class _Entry:
    __slots__ = ("service", "stub", "created_at", "leases", "retired")

    def __init__(self, service: ServiceName, stub: Any, created_at: float) -> None:
        self.service = service
        self.stub = stub
        self.created_at = created_at
        self.leases = 0
        self.retired = False


class ServiceCache:
    """TTL + LRU cache mapping a service name to one live stub.

    Evicted stubs are closed exactly once. A stub that is leased when it is
    evicted is retired instead: it is never handed out again and is closed
    once the last lease is released.
    """

    def __init__(
        self,
        factory: StubFactory,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        dispose: Callable[[Any], None] = close_stub,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._factory = factory
        self.ttl = ttl
        self.max_size = max_size
        self._dispose = dispose
        self._clock = clock
        self._entries: OrderedDict[ServiceName, _Entry] = OrderedDict()
        self._to_close: list[_Entry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if not self._is_expired(entry, now))

    def __contains__(self, name: object) -> bool:
        try:
            service = ServiceName.parse(name)  # type: ignore[arg-type]
        except UnknownServiceError:
            return False
        with self._lock:
            entry = self._entries.get(service)
            return entry is not None and not self._is_expired(entry, self._clock())

    def get(self, name: ServiceName | str) -> Any:
        """Return the live stub for ``name``, creating it on a miss or after expiry."""
        service = ServiceName.parse(name)
        try:
            with self._lock:
                return self._acquire(service).stub
        finally:
            self._drain()

    @contextmanager
    def lease(self, name: ServiceName | str) -> Iterator[Any]:
        """Pin the stub for ``name`` so eviction cannot close it mid-call."""
        service = ServiceName.parse(name)
        try:
            with self._lock:
                entry = self._acquire(service)
                entry.leases += 1
        finally:
            self._drain()
        try:
            yield entry.stub
        finally:
            with self._lock:
                entry.leases -= 1
                if entry.retired and entry.leases == 0:
                    self._to_close.append(entry)
            self._drain()

    def evict(self, name: ServiceName | str) -> bool:
        service = ServiceName.parse(name)
        try:
            with self._lock:
                entry = self._entries.get(service)
                if entry is None:
                    return False
                self._evict(entry, reason="manual")
                return True
        finally:
            self._drain()

    def clear(self) -> None:
        """Evict every entry, closing idle stubs now and leased ones on release."""
        try:
            with self._lock:
                for entry in list(self._entries.values()):
                    self._evict(entry, reason="clear")
        finally:
            self._drain()

    close = clear

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.created_at >= self.ttl

    def _acquire(self, service: ServiceName) -> _Entry:
        now = self._clock()
        for entry in list(self._entries.values()):
            if self._is_expired(entry, now):
                self._evict(entry, reason="expired")

        entry = self._entries.get(service)
        if entry is not None:
            self._entries.move_to_end(service)
            return entry

        stub = self._factory(service)
        entry = _Entry(service, stub, now)
        self._entries[service] = entry
        logger.debug("Initialised %s client", service.value)
        while len(self._entries) > self.max_size:
            oldest = next(iter(self._entries.values()))
            self._evict(oldest, reason="capacity")
        return entry

    def _evict(self, entry: _Entry, reason: str) -> None:
        self._entries.pop(entry.service, None)
        logger.debug("Evicting %s client (%s)", entry.service.value, reason)
        if entry.leases:
            entry.retired = True
        else:
            self._to_close.append(entry)

    def _drain(self) -> None:
        with self._lock:
            pending, self._to_close = self._to_close, []
        for entry in pending:
            try:
                self._dispose(entry.stub)
            except Exception:
                logger.exception("Failed to close %s client", entry.service.value)


__all__ = ["DEFAULT_MAX_SIZE", "DEFAULT_TTL_SECONDS", "ServiceCache"]
