"""
Calculation Cache Module

Per-loan memoization of calculation service results on a single event loop.

Concurrent requests for the same loan share one in-flight fetch. Every
invalidation bumps the loan's generation; a fetch started under an older
generation still answers its waiters but is not stored, so an invalidation
is never overwritten by the data it invalidated. Failures are recorded as an
unavailable marker, never as a value.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from .errors import StaleCacheRaceError
from .results import CalculationResult

logger = logging.getLogger("loancalc.cache")

Fetcher = Callable[[], Awaitable[CalculationResult]]
InvalidationListener = Callable[[str], None]


class EntryState(Enum):
    READY = "ready"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CacheEntry:
    """Stored outcome of the latest completed fetch for a loan"""
    state: EntryState
    generation: int
    stored_at: float
    result: Optional[CalculationResult] = None
    error: Optional[Exception] = None


class CalculationCache:
    """Loan-id keyed cache with in-flight coalescing"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}
        self._listeners: List[InvalidationListener] = []
        self.hits = 0
        self.misses = 0

    def peek(self, loan_id: str) -> Optional[CacheEntry]:
        """Current entry without triggering a fetch"""
        return self._entries.get(loan_id)

    def get(self, loan_id: str) -> Optional[CalculationResult]:
        """Cached result, if one is ready"""
        entry = self._entries.get(loan_id)
        if entry is not None and entry.state is EntryState.READY:
            return entry.result
        return None

    def is_in_flight(self, loan_id: str) -> bool:
        return loan_id in self._in_flight

    def generation(self, loan_id: str) -> int:
        return self._generations.get(loan_id, 0)

    def start_fetch(self, loan_id: str, fetcher: Fetcher) -> asyncio.Task:
        """
        Start a fetch for a loan, or join the one already running

        Must be called from within a running event loop.
        """
        task = self._in_flight.get(loan_id)
        if task is not None:
            return task

        self.misses += 1
        generation = self.generation(loan_id)
        task = asyncio.ensure_future(self._fetch(loan_id, fetcher, generation))
        self._in_flight[loan_id] = task
        task.add_done_callback(lambda done: self._finish(loan_id, done))
        logger.debug("Fetching calculation for loan %s (generation %d)", loan_id, generation)
        return task

    async def get_or_fetch(self, loan_id: str, fetcher: Fetcher) -> CalculationResult:
        """
        Cached result, or the result of a single shared fetch

        Raises:
            Whatever the fetcher raised; the failure is also recorded as an
            unavailable marker until the next fetch or invalidation
        """
        result = self.get(loan_id)
        if result is not None:
            self.hits += 1
            logger.debug("Cache hit for loan %s", loan_id)
            return result

        task = self.start_fetch(loan_id, fetcher)
        # A cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    async def _fetch(self, loan_id: str, fetcher: Fetcher, generation: int) -> CalculationResult:
        try:
            result = await fetcher()
        except Exception as e:
            if self.generation(loan_id) == generation:
                self._entries[loan_id] = CacheEntry(
                    state=EntryState.UNAVAILABLE,
                    generation=generation,
                    stored_at=time.time(),
                    error=e
                )
            logger.warning("Calculation fetch for loan %s failed: %s", loan_id, e)
            raise

        try:
            self.put(loan_id, result, expected_generation=generation)
        except StaleCacheRaceError as e:
            logger.debug("Discarding stale calculation: %s", e)
        return result

    def put(self, loan_id: str, result: CalculationResult, expected_generation: Optional[int] = None) -> None:
        """
        Store a result; the last write wins

        Raises:
            StaleCacheRaceError: If the loan was invalidated since
                `expected_generation` was read
        """
        generation = self.generation(loan_id)
        if expected_generation is not None and expected_generation != generation:
            raise StaleCacheRaceError(
                f"Loan {loan_id} moved to generation {generation} during a generation {expected_generation} fetch"
            )
        self._entries[loan_id] = CacheEntry(
            state=EntryState.READY,
            generation=generation,
            stored_at=time.time(),
            result=result
        )

    def _finish(self, loan_id: str, task: asyncio.Task):
        if self._in_flight.get(loan_id) is task:
            del self._in_flight[loan_id]
        # Marks the exception retrieved; waiters still receive it
        if not task.cancelled():
            task.exception()

    def invalidate(self, loan_id: str) -> bool:
        """
        Drop a loan's entry and notify listeners

        A fetch already running keeps answering its own waiters, but its
        result is not stored and later callers start a fresh fetch.

        Returns:
            True if an entry or in-flight fetch was dropped
        """
        self._generations[loan_id] = self.generation(loan_id) + 1
        dropped = self._entries.pop(loan_id, None) is not None
        dropped = self._in_flight.pop(loan_id, None) is not None or dropped

        for listener in list(self._listeners):
            try:
                listener(loan_id)
            except Exception as e:
                logger.error(f"Invalidation listener failed for loan {loan_id}: {e}")

        logger.debug("Invalidated calculation for loan %s", loan_id)
        return dropped

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    def remove_invalidation_listener(self, listener: InvalidationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        """Invalidate every known loan"""
        for loan_id in set(self._entries) | set(self._in_flight):
            self.invalidate(loan_id)

    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "hits": self.hits,
            "misses": self.misses,
        }
