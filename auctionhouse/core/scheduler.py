"""
Auction Scheduler - time-based transitions independent of bid traffic.

Jobs sit in a min-heap keyed by due time. A worker thread sleeps on a
condition variable until the earliest job is due (or `run_due` is driven by
hand, as tests and the demo do). Delivery is at-least-once: a handler that
raises is retried after `retry_delay` up to `max_retries` times, so handlers
must be idempotent.
"""

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from auctionhouse.utils.clock import Clock, system_clock
from auctionhouse.utils.logger import get_logger

logger = get_logger("scheduler")

Handler = Callable[[str], None]


class JobKind(str, Enum):
    ACTIVATE = "activate"
    CLOSE = "close"


@dataclass(order=True)
class ScheduledJob:
    due_at: float
    seq: int
    kind: JobKind = field(compare=False)
    auction_id: str = field(compare=False)
    attempts: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)

    @property
    def key(self) -> Tuple[str, JobKind]:
        return self.auction_id, self.kind


class AuctionScheduler:
    """
    Min-heap timer for auction activation and close.

    At most one job per (auction, kind) is live; scheduling again replaces
    the previous job.
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        retry_delay: float = 5.0,
        max_retries: int = 3,
        poll_interval: float = 0.5,
    ):
        self.clock = clock
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.poll_interval = poll_interval

        self._heap: List[ScheduledJob] = []
        self._jobs: Dict[Tuple[str, JobKind], ScheduledJob] = {}
        self._handlers: Dict[JobKind, Handler] = {}
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def set_handler(self, kind: JobKind, handler: Handler) -> None:
        self._handlers[kind] = handler

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _push(self, kind: JobKind, auction_id: str, at: float, attempts: int = 0) -> ScheduledJob:
        job = ScheduledJob(due_at=at, seq=next(self._seq), kind=kind,
                           auction_id=auction_id, attempts=attempts)
        with self._cond:
            previous = self._jobs.get(job.key)
            if previous is not None:
                previous.cancelled = True
            self._jobs[job.key] = job
            heapq.heappush(self._heap, job)
            self._cond.notify_all()
        logger.debug(f"Scheduled {kind.value} for auction {auction_id[:8]} at {at:.0f}")
        return job

    def schedule_close(self, auction_id: str, at: float) -> ScheduledJob:
        return self._push(JobKind.CLOSE, auction_id, at)

    def schedule_activation(self, auction_id: str, at: float) -> ScheduledJob:
        return self._push(JobKind.ACTIVATE, auction_id, at)

    def cancel(self, auction_id: str) -> int:
        """Drop every pending job for an auction. Returns how many were dropped."""
        dropped = 0
        with self._cond:
            for kind in JobKind:
                job = self._jobs.pop((auction_id, kind), None)
                if job is not None:
                    job.cancelled = True
                    dropped += 1
        return dropped

    def pending_jobs(self) -> List[ScheduledJob]:
        with self._cond:
            return sorted(job for job in self._heap if not job.cancelled)

    def next_due(self) -> Optional[float]:
        with self._cond:
            self._discard_cancelled()
            return self._heap[0].due_at if self._heap else None

    def _discard_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)

    # =========================================================================
    # Firing
    # =========================================================================

    def _pop_due(self, now: float) -> List[ScheduledJob]:
        due = []
        with self._cond:
            self._discard_cancelled()
            while self._heap and self._heap[0].due_at <= now:
                job = heapq.heappop(self._heap)
                if job.cancelled:
                    continue
                if self._jobs.get(job.key) is job:
                    del self._jobs[job.key]
                due.append(job)
        return due

    def run_due(self, now: Optional[float] = None) -> int:
        """
        Fire every job due at `now` (default: the clock).

        Returns:
            Number of jobs whose handler completed
        """
        now = self.clock() if now is None else now
        completed = 0

        for job in self._pop_due(now):
            handler = self._handlers.get(job.kind)
            if handler is None:
                logger.warning(f"No handler for {job.kind.value} job on auction {job.auction_id[:8]}")
                continue
            try:
                handler(job.auction_id)
                completed += 1
            except Exception as e:
                self._retry(job, now, e)

        return completed

    def _retry(self, job: ScheduledJob, now: float, error: Exception) -> None:
        attempts = job.attempts + 1
        if attempts > self.max_retries:
            logger.error(
                f"Giving up {job.kind.value} for auction {job.auction_id[:8]} "
                f"after {attempts} attempts: {error}"
            )
            return
        logger.warning(
            f"{job.kind.value} for auction {job.auction_id[:8]} failed ({error}); "
            f"retry {attempts}/{self.max_retries} in {self.retry_delay}s"
        )
        with self._cond:
            # A newer job scheduled by the handler itself takes precedence
            if job.key in self._jobs:
                return
        self._push(job.kind, job.auction_id, now + self.retry_delay, attempts=attempts)

    # =========================================================================
    # Worker Thread
    # =========================================================================

    def start(self) -> None:
        """Start the background worker."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, name="auction-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started")

    def stop(self, timeout: float = 5.0) -> None:
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        while True:
            with self._cond:
                if not self._running:
                    return
                self._discard_cancelled()
                if self._heap:
                    delay = max(0.0, self._heap[0].due_at - self.clock())
                else:
                    delay = self.poll_interval
                # Bounded wait so injected clocks that jump are noticed
                if delay > 0:
                    self._cond.wait(timeout=min(delay, self.poll_interval))
                if not self._running:
                    return
            try:
                self.run_due()
            except Exception:
                logger.exception("Scheduler tick failed")
