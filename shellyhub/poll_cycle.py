"""Periodic polling of connected appliances."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from shellyhub.client_map import ClientMap

logger = logging.getLogger(__name__)

POLL_DELAY = 10
POLL_INTERVAL = 5


def poll_once(client_map: ClientMap, now: int) -> list[Any]:
    """Poll every client due at ``now`` and reschedule it; return those polled."""
    polled = []
    for client in client_map.due(now):
        try:
            if client.next_update > now:
                continue
            client.last_poll = now
            client_map.modify(client, lambda c: setattr(c, "next_update", now + POLL_DELAY))
            client.appliance.poll_state()
            polled.append(client)
        except Exception:
            logger.exception("polling client %s failed", getattr(client, "mac", client))
    return polled


def poll_cycle(
    client_map: ClientMap,
    stop_event: threading.Event | None = None,
    interval: float = POLL_INTERVAL,
    clock: Callable[[], float] = time.time,
) -> None:
    """Poll due clients every ``interval`` seconds until ``stop_event`` is set."""
    if stop_event is None:
        stop_event = threading.Event()
    while not stop_event.is_set():
        poll_once(client_map, int(clock()))
        stop_event.wait(interval)