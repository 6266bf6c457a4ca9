"""
Content Rate Limiter

Caps concurrent AI provider work per content class (image, video, text).
Each class is backed by its own semaphore, so slot acquisition is atomic
and the number of holders never exceeds the configured capacity.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Dict, Optional

from portfolio_ai.core.exceptions import RateLimitException
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.models import MediaKind
from portfolio_ai.services.prometheus_metrics import get_metrics

logger = get_logger(__name__)


class ContentClass(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"

    @classmethod
    def for_media(cls, kind: MediaKind) -> "ContentClass":
        return cls.IMAGE if kind == MediaKind.IMAGE else cls.VIDEO


class _ClassState:
    """Semaphore plus counters for one content class."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.semaphore = asyncio.Semaphore(capacity)
        self.active = 0
        self.peak = 0
        self.total_acquired = 0
        self.total_wait_ms = 0.0
        self.timeouts = 0
        self.ignored_releases = 0


class ContentRateLimiter:
    """
    Limits concurrent analysis calls per content class.

    Provides metrics on active slots and wait times per class.
    """

    def __init__(self, capacities: Dict[ContentClass, int]):
        """
        Initialize rate limiter.

        Args:
            capacities: Maximum concurrent holders for each content class
        """
        self._states: Dict[ContentClass, _ClassState] = {}
        for content_class in ContentClass:
            capacity = capacities.get(content_class, 1)
            if capacity < 1:
                raise ValueError(f"Capacity for {content_class.value} must be at least 1")
            self._states[content_class] = _ClassState(capacity)

        logger.info(
            "ContentRateLimiter initialized "
            + ", ".join(f"{c.value}={s.capacity}" for c, s in self._states.items())
        )

    @classmethod
    def from_config(cls, config) -> "ContentRateLimiter":
        return cls({
            ContentClass.IMAGE: config.image_concurrency,
            ContentClass.VIDEO: config.video_concurrency,
            ContentClass.TEXT: config.text_concurrency,
        })

    async def wait_for_slot(self, content_class: ContentClass, timeout: Optional[float] = None) -> bool:
        """
        Suspend until a slot for the class is free.

        Args:
            content_class: Class of work about to start
            timeout: Optional timeout in seconds

        Returns:
            True if slot acquired, False if timeout exceeded
        """
        content_class = ContentClass(content_class)
        state = self._states[content_class]
        wait_start = time.monotonic()

        try:
            if timeout is None:
                await state.semaphore.acquire()
            elif timeout <= 0:
                # Non-blocking: take a free slot or give up immediately
                if state.semaphore.locked():
                    raise asyncio.TimeoutError()
                await state.semaphore.acquire()
            else:
                await asyncio.wait_for(state.semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            state.timeouts += 1
            logger.warning(
                f"Timeout acquiring {content_class.value} slot after {timeout}s "
                f"(active: {state.active}/{state.capacity})"
            )
            return False

        wait_seconds = time.monotonic() - wait_start
        state.active += 1
        state.total_acquired += 1
        state.total_wait_ms += wait_seconds * 1000
        state.peak = max(state.peak, state.active)
        get_metrics().update_slot_metrics(content_class.value, state.active, wait_seconds)

        logger.debug(
            f"Acquired {content_class.value} slot "
            f"(active: {state.active}/{state.capacity}, wait: {wait_seconds * 1000:.1f}ms)"
        )
        return True

    def complete_task(self, content_class: ContentClass) -> None:
        """
        Release one slot of the class.

        A release with no slot held is ignored so capacity cannot grow.
        """
        content_class = ContentClass(content_class)
        state = self._states[content_class]
        if state.active <= 0:
            state.ignored_releases += 1
            logger.warning(f"Ignoring release of {content_class.value} slot with no active holders")
            return

        state.active -= 1
        state.semaphore.release()
        get_metrics().update_slot_metrics(content_class.value, state.active)

        logger.debug(f"Released {content_class.value} slot (active: {state.active}/{state.capacity})")

    @asynccontextmanager
    async def slot(self, content_class: ContentClass, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        content_class = ContentClass(content_class)
        if not await self.wait_for_slot(content_class, timeout):
            raise RateLimitException(
                content_class.value,
                self._states[content_class].capacity,
                timeout
            )
        try:
            yield
        finally:
            self.complete_task(content_class)

    def active(self, content_class: ContentClass) -> int:
        return self._states[ContentClass(content_class)].active

    def capacity(self, content_class: ContentClass) -> int:
        return self._states[ContentClass(content_class)].capacity

    def get_metrics(self) -> dict:
        """
        Get current slot metrics.

        Returns:
            Dict keyed by content class with capacity and usage statistics
        """
        metrics = {}
        for content_class, state in self._states.items():
            avg_wait_ms = (
                state.total_wait_ms / state.total_acquired
                if state.total_acquired > 0
                else 0
            )
            metrics[content_class.value] = {
                "capacity": state.capacity,
                "active_count": state.active,
                "available_slots": state.capacity - state.active,
                "utilization_pct": (state.active / state.capacity) * 100,
                "total_acquired": state.total_acquired,
                "avg_wait_ms": round(avg_wait_ms, 2),
                "peak_active": state.peak,
                "timeouts": state.timeouts,
                "ignored_releases": state.ignored_releases,
            }
        return metrics
