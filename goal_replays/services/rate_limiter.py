"""Adaptive rate limiting for Reddit searches."""

import threading
import time
from typing import Callable, List, Optional, Sequence
from goal_replays.config import REDDIT_REQUESTS_PER_MINUTE
from goal_replays.config.reddit import BLOCK_BACKOFF_MINUTES, USER_AGENTS
from goal_replays.exceptions import ResolutionCancelled
from goal_replays.utils.logger import search_logger


class RateLimiter:
    """Spaces requests at least min_interval apart.

    The interval doubles for BLOCK_BACKOFF_MINUTES after Reddit blocks a
    request. User agents are handed out round-robin, one per request.
    wait() is the only place a search sleeps.
    """

    def __init__(
        self,
        requests_per_minute: int = REDDIT_REQUESTS_PER_MINUTE,
        user_agents: Sequence[str] = USER_AGENTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        block_window: float = BLOCK_BACKOFF_MINUTES * 60
    ):
        if requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")
        if not user_agents:
            raise ValueError("At least one user agent is required")

        self.min_interval = 60.0 / requests_per_minute
        self.user_agents: List[str] = list(user_agents)
        self.block_window = block_window
        self.block_count = 0

        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: Optional[float] = None
        self._last_block: Optional[float] = None
        self._agent_index = 0

    def _current_interval_locked(self, now: float) -> float:
        if self._last_block is not None and now - self._last_block < self.block_window:
            return self.min_interval * 2
        return self.min_interval

    def current_interval(self) -> float:
        """Interval that applies to the next request."""
        with self._lock:
            return self._current_interval_locked(self._clock())

    def wait(self, cancel_event: Optional[threading.Event] = None, timeout: Optional[float] = None) -> float:
        """Block until the next request may be sent.

        The request slot is reserved under the lock and the sleep happens
        outside it, so record_block() and next_user_agent() never stall
        behind a waiting caller. A cancelled wait gives its slot back.

        Args:
            cancel_event: Aborts the wait when set
            timeout: Seconds the caller can still afford to wait

        Returns:
            float: Seconds spent waiting

        Raises:
            ResolutionCancelled: If cancelled, or the wait would exceed timeout
        """
        with self._lock:
            now = self._clock()
            delay = 0.0
            if self._last_request is not None:
                delay = max(0.0, self._current_interval_locked(now) - (now - self._last_request))

            if timeout is not None and delay > timeout:
                raise ResolutionCancelled(
                    f"Rate limit wait of {delay:.1f}s exceeds remaining {timeout:.1f}s"
                )
            if cancel_event is not None and cancel_event.is_set():
                raise ResolutionCancelled("Cancelled before request")

            previous = self._last_request
            slot = now + delay
            self._last_request = slot

        if delay > 0:
            search_logger.debug(f"Rate limiter sleeping {delay:.1f}s")
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    with self._lock:
                        if self._last_request == slot:
                            self._last_request = previous
                    raise ResolutionCancelled("Cancelled while waiting for rate limiter")
            else:
                self._sleep(delay)

        return delay

    def record_block(self) -> None:
        """Note a block so the next requests are spaced further apart."""
        with self._lock:
            self.block_count += 1
            self._last_block = self._clock()
        search_logger.warning(
            f"[BLOCKED] Reddit block #{self.block_count}, "
            f"request interval doubled to {self.min_interval * 2:.1f}s for {self.block_window / 60:.0f} min"
        )

    def next_user_agent(self) -> str:
        """Return the next user agent in rotation."""
        with self._lock:
            agent = self.user_agents[self._agent_index]
            self._agent_index = (self._agent_index + 1) % len(self.user_agents)
            return agent
