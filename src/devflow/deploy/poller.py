"""Re-armable polling loop for tracked deployments."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(interval: float, function: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class PollingLoop:
    """Runs `tick` on a timer while it keeps asking to be re-armed.

    `tick` returns True when there is still work pending. When it returns
    False (or raises) the loop goes idle until the next `kick()`.
    """

    def __init__(
        self,
        tick: Callable[[], bool],
        interval: float,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._tick = tick
        self.interval = interval
        self._timer_factory = timer_factory or _thread_timer
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._closed = False

    @property
    def active(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def kick(self) -> None:
        """Cancel any pending tick and run one immediately (on the timer thread)."""
        self._schedule(0.0)

    def cancel(self) -> None:
        """Stop for good; used on disposal."""
        with self._lock:
            self._closed = True
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule(self, delay: float) -> None:
        with self._lock:
            self._arm(delay)

    def _arm(self, delay: float) -> None:
        # 调用方须持有 self._lock
        if self._closed:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        generation = self._generation
        self._timer = self._timer_factory(delay, lambda: self._run(generation))
        self._timer.start()

    def _run(self, generation: int) -> None:
        with self._lock:
            # 被 kick/cancel 取代的旧定时器直接退出
            if self._closed or generation != self._generation:
                return

        rearm = False
        try:
            rearm = self._tick()
        except Exception:
            logger.exception("Deployment polling tick failed")

        with self._lock:
            # tick 期间被 kick/cancel 过，新定时器已就位
            if generation != self._generation:
                return
            if not rearm:
                self._timer = None
                logger.debug("No pending deployments, polling loop idle")
                return
            self._arm(self.interval)
