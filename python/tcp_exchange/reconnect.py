"""Delayed background reconnect after a failed open."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tcp_exchange.connection import ConnectionHolder, ConnectionState

logger = logging.getLogger(__name__)


class Reconnector:
    """Schedules close-then-open of a connection slot on a background executor.

    One task is submitted per call to :meth:`schedule`. The task sleeps
    ``interval`` seconds on ``shutdown``; setting that event interrupts the
    sleep and the task exits without reopening.
    """

    def __init__(
        self,
        holder: ConnectionHolder,
        executor: Executor,
        interval: float,
        shutdown: threading.Event,
    ) -> None:
        self._holder = holder
        self._executor = executor
        self._interval = interval
        self._shutdown = shutdown

    def schedule(self, state: ConnectionState) -> Future[None] | None:
        if self._shutdown.is_set():
            return None
        try:
            return self._executor.submit(self._reconnect, state)
        except RuntimeError as exc:
            # executor already shut down
            logger.warning("Error reconnect to [%s]: [%s]", self._holder.address, exc)
            return None

    def _reconnect(self, state: ConnectionState) -> None:
        if self._shutdown.wait(self._interval):
            logger.warning("Error reconnect to [%s]: [interrupted]", self._holder.address)
            return
        with state.lock:
            self._holder.close(state)
            self._holder.open(state)
