"""A container of clients indexed by socket, by MAC and by next update time."""

from __future__ import annotations

import itertools
import math
import threading
from bisect import bisect_left, bisect_right, insort
from typing import Any, Callable, Iterator


class ClientMap:
    """Clients indexed uniquely by socket and MAC, and ordered by next update.

    A client is any object with ``socket``, ``mac`` and ``next_update``
    attributes. Indexed attributes must only be changed through ``modify``.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_socket: dict[Any, Any] = {}
        self._by_mac: dict[str, Any] = {}
        self._schedule: list[tuple[int, int, Any]] = []
        self._keys: dict[int, tuple[Any, str, tuple[int, int, Any]]] = {}
        self._seq = itertools.count()

    def _index(self, client: Any) -> None:
        entry = (client.next_update, next(self._seq), client)
        self._by_socket[client.socket] = client
        self._by_mac[client.mac] = client
        insort(self._schedule, entry)
        self._keys[id(client)] = (client.socket, client.mac, entry)

    def _unindex(self, client: Any) -> None:
        socket, mac, entry = self._keys.pop(id(client))
        del self._by_socket[socket]
        del self._by_mac[mac]
        del self._schedule[bisect_left(self._schedule, entry)]

    def add(self, client: Any) -> bool:
        """Insert a client; return False if its socket or MAC is already taken."""
        with self._lock:
            if client in self or client.socket in self._by_socket or client.mac in self._by_mac:
                return False
            self._index(client)
            return True

    def remove(self, client: Any) -> None:
        """Remove a client, raising KeyError if it is not held."""
        with self._lock:
            if client not in self:
                raise KeyError(client)
            self._unindex(client)

    def clear(self) -> None:
        with self._lock:
            self._by_socket.clear()
            self._by_mac.clear()
            self._schedule.clear()
            self._keys.clear()

    def by_socket(self, socket: Any) -> Any | None:
        with self._lock:
            return self._by_socket.get(socket)

    def by_mac(self, mac: str) -> Any | None:
        with self._lock:
            return self._by_mac.get(mac)

    def due(self, now: int) -> list[Any]:
        """Clients whose next update lies in [0, now], earliest first."""
        with self._lock:
            low = bisect_left(self._schedule, (0,))
            high = bisect_right(self._schedule, (now, math.inf))
            return [entry[2] for entry in self._schedule[low:high]]

    def modify(self, client: Any, change: Callable[[Any], None]) -> bool:
        """Apply ``change`` to a client and re-index it.

        If the change makes its socket or MAC collide with another client,
        the modified client is dropped from the map and False is returned.
        """
        with self._lock:
            if client not in self:
                raise KeyError(client)
            change(client)
            self._unindex(client)
            if client.socket in self._by_socket or client.mac in self._by_mac:
                return False
            self._index(client)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __iter__(self) -> Iterator[Any]:
        with self._lock:
            return iter(list(self._by_socket.values()))

    def __contains__(self, client: object) -> bool:
        with self._lock:
            keys = self._keys.get(id(client))
            return keys is not None and keys[2][2] is client