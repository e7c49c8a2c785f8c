"""
Bounded pool of storage handles.

Keeps up to ``max_size`` handles open, hands out idle ones first and
only opens new handles while under the limit. When every handle is
busy, ``acquire`` waits for a release and fails with
PoolExhaustedError once the timeout passes. An active handle is never
handed to a second caller.
"""
import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, asdict
from typing import AsyncIterator, Awaitable, Callable, Deque, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

HandleT = TypeVar("HandleT")

DEFAULT_POOL_SIZE = 8
MAX_POOL_SIZE = 32
MIN_IDLE = 2
POOL_TIMEOUT = 30.0


class PoolExhaustedError(Exception):
    """Raised when no handle became available within the acquire timeout."""


class PoolClosedError(Exception):
    """Raised when acquiring from a pool that has been shut down."""


@dataclass
class PoolStats:
    """Counters describing pool usage."""
    created: int = 0
    acquired: int = 0
    released: int = 0
    destroyed: int = 0
    exhausted: int = 0


class ConnectionPool(Generic[HandleT]):
    """
    Async pool of reusable storage handles.

    Args:
        factory: Coroutine function opening a new handle
        closer: Coroutine function closing a handle
        max_size: Working maximum of open handles
        min_idle: Handles opened on start; also the floor for resize()
        hard_max: Ceiling for resize()
        acquire_timeout: Default seconds to wait for a free handle
        name: Label used in log messages
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[HandleT]],
        closer: Callable[[HandleT], Awaitable[None]],
        max_size: int = DEFAULT_POOL_SIZE,
        min_idle: int = MIN_IDLE,
        hard_max: int = MAX_POOL_SIZE,
        acquire_timeout: float = POOL_TIMEOUT,
        name: str = "storage",
    ):
        if min_idle < 0 or hard_max < 1 or min_idle > hard_max:
            raise ValueError("Pool bounds must satisfy 0 <= min_idle <= hard_max and hard_max >= 1")

        self._factory = factory
        self._closer = closer
        self._min_idle = min_idle
        self._hard_max = hard_max
        self._max_size = self._clamp(max_size)
        self._acquire_timeout = acquire_timeout
        self._name = name

        self._idle: Deque[HandleT] = deque()
        self._active: Dict[int, HandleT] = {}
        self._opening = 0
        self._waiting = 0
        self._closed = False
        self._cond = asyncio.Condition()
        self._stats = PoolStats()

    def _clamp(self, size: int) -> int:
        return min(max(size, self._min_idle, 1), self._hard_max)

    @property
    def size(self) -> int:
        """Open handles, including ones currently being opened."""
        return len(self._idle) + len(self._active) + self._opening

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Open ``min_idle`` handles up front."""
        await self._fill_to(self._min_idle)
        logger.info(f"[pool:{self._name}] Started with {len(self._idle)} idle handle(s), max {self._max_size}")

    async def _fill_to(self, target: int) -> None:
        while self.size < min(target, self._max_size) and not self._closed:
            handle = await self._factory()
            async with self._cond:
                self._idle.append(handle)
                self._stats.created += 1
                self._cond.notify()

    def _can_acquire(self) -> bool:
        return self._closed or bool(self._idle) or self.size < self._max_size

    async def acquire(self, timeout: Optional[float] = None) -> HandleT:
        """
        Get a handle for exclusive use.

        Args:
            timeout: Seconds to wait when the pool is exhausted
                (defaults to the pool's acquire timeout)

        Returns:
            An idle or newly opened handle

        Raises:
            PoolExhaustedError: No handle was released in time
            PoolClosedError: The pool has been shut down
        """
        wait = self._acquire_timeout if timeout is None else timeout

        async with self._cond:
            if not self._can_acquire():
                logger.warning(
                    f"[pool:{self._name}] Connection pool exhausted "
                    f"({len(self._active)} active), waiting up to {wait}s for a release"
                )
                self._waiting += 1
                try:
                    await asyncio.wait_for(self._cond.wait_for(self._can_acquire), timeout=wait)
                except asyncio.TimeoutError:
                    self._stats.exhausted += 1
                    logger.warning(f"[pool:{self._name}] No handle released within {wait}s")
                    raise PoolExhaustedError(
                        f"Pool '{self._name}' exhausted: {self._max_size} handle(s) in use"
                    ) from None
                finally:
                    self._waiting -= 1

            if self._closed:
                raise PoolClosedError(f"Pool '{self._name}' is closed")

            if self._idle:
                handle = self._idle.popleft()
                self._active[id(handle)] = handle
                self._stats.acquired += 1
                return handle

            # Reserve the slot before leaving the lock to open the handle
            self._opening += 1

        try:
            handle = await self._factory()
        except Exception:
            async with self._cond:
                self._opening -= 1
                self._cond.notify()
            raise

        async with self._cond:
            self._opening -= 1
            self._stats.created += 1
            self._active[id(handle)] = handle
            self._stats.acquired += 1
        return handle

    async def release(self, handle: HandleT) -> None:
        """
        Return a handle to the idle set.

        Handles above the working maximum (after a shrinking resize) are
        retired here instead of going back to idle.
        """
        retire = False
        async with self._cond:
            if self._active.pop(id(handle), None) is None:
                logger.warning(f"[pool:{self._name}] Ignoring release of a handle not owned by the pool")
                return
            self._stats.released += 1

            if self._closed or self.size + 1 > self._max_size:
                retire = True
            else:
                self._idle.append(handle)
                self._cond.notify()

        if retire:
            await self._close_handle(handle)

    async def resize(self, new_max_size: int) -> int:
        """
        Adjust the working maximum within [min_idle, hard_max].

        Growing takes effect immediately; shrinking happens as handles are
        released. Active handles are never closed.

        Returns:
            The applied maximum
        """
        async with self._cond:
            self._max_size = self._clamp(new_max_size)
            excess = max(0, self.size - self._max_size)
            to_close = [self._idle.pop() for _ in range(min(excess, len(self._idle)))]
            self._cond.notify_all()

        for handle in to_close:
            await self._close_handle(handle)

        await self._fill_to(self._min_idle)
        logger.info(f"[pool:{self._name}] Resized to max {self._max_size}")
        return self._max_size

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None) -> AsyncIterator[HandleT]:
        """Acquire a handle for the duration of the block."""
        handle = await self.acquire(timeout=timeout)
        try:
            yield handle
        finally:
            await self.release(handle)

    async def _close_handle(self, handle: HandleT) -> None:
        try:
            await self._closer(handle)
        except Exception as e:
            logger.error(f"[pool:{self._name}] Error closing handle: {e}", exc_info=True)
        self._stats.destroyed += 1

    async def close_all(self) -> None:
        """Close every handle. Only called on shutdown."""
        async with self._cond:
            self._closed = True
            handles = list(self._idle) + list(self._active.values())
            self._idle.clear()
            self._active.clear()
            self._cond.notify_all()

        for handle in handles:
            await self._close_handle(handle)
        logger.info(f"[pool:{self._name}] Closed {len(handles)} handle(s)")

    def stats(self) -> dict:
        """Snapshot of pool counters and gauges."""
        data = asdict(self._stats)
        data.update({
            "idle": len(self._idle),
            "active": len(self._active),
            "waiting": self._waiting,
            "max_size": self._max_size,
        })
        return data
