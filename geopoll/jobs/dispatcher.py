"""
Job Dispatcher
==============

Owns the poll job state machine:

    PENDING -> RUNNING -> SUCCEEDED
                       -> FAILED_RETRYABLE -> PENDING
                       -> FAILED_EXHAUSTED

A worker callable runs one attempt of a job and may return a follow-up job
descriptor, which is enqueued as an independent job. Any exception from the
worker consumes an attempt. Once the retry policy's ceiling is reached the
job becomes FAILED_EXHAUSTED and the exhaustion callback runs exactly once;
failures inside that callback are logged and never re-enter the retry cycle.
"""

import heapq
import itertools
import threading
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..utils.logging import get_logger_for_component
from ..utils.exceptions import InvalidTransitionError
from .models import ALLOWED_TRANSITIONS, JobRecord, JobState, PollJob, Transition
from .retry_policy import RetryPolicy

Worker = Callable[[PollJob], Optional[PollJob]]
ExhaustionCallback = Callable[[PollJob, BaseException], None]


class JobDispatcher:
    """Queue, worker pool and retry state machine for poll jobs."""

    def __init__(
        self,
        worker: Worker,
        retry_policy: Optional[RetryPolicy] = None,
        on_exhausted: Optional[ExhaustionCallback] = None,
        worker_count: int = 5,
        job_name: str = "PublisherPoll",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize dispatcher.

        Args:
            worker: Runs one attempt of a job, returns an optional follow-up job
            retry_policy: Attempt ceiling and backoff (defaults to 5 attempts)
            on_exhausted: Called once with (job, last_error) on exhaustion
            worker_count: Fixed size of the worker pool
            job_name: Name used in log messages
            clock: Monotonic clock, injectable for tests
            sleep: Sleep function, injectable for tests
        """
        self.worker = worker
        self.retry_policy = retry_policy or RetryPolicy()
        self.on_exhausted = on_exhausted
        self.worker_count = worker_count
        self.job_name = job_name
        self.clock = clock
        self.sleep = sleep
        self.logger = get_logger_for_component("dispatcher")

        self._lock = threading.Lock()
        self._queue: List[Tuple[float, int, JobRecord]] = []
        self._sequence = itertools.count()
        self.records: List[JobRecord] = []

    def enqueue(self, job: PollJob, delay: float = 0.0) -> JobRecord:
        """Add a job to the queue. Returns immediately."""
        record = JobRecord(job=job, not_before=self.clock() + delay)
        with self._lock:
            self.records.append(record)
            heapq.heappush(self._queue, (record.not_before, next(self._sequence), record))

        self.logger.debug(
            f"Enqueued {self.job_name} {job.args}",
            extra={"job_id": job.job_id, "publisher_id": job.publisher_id},
        )
        return record

    def _requeue(self, record: JobRecord, delay: float) -> None:
        record.not_before = self.clock() + delay
        with self._lock:
            heapq.heappush(self._queue, (record.not_before, next(self._sequence), record))

    def _transition(self, record: JobRecord, target: JobState) -> None:
        if target not in ALLOWED_TRANSITIONS[record.state]:
            raise InvalidTransitionError(record.state.value, target.value)

        record.history.append(
            Transition(
                from_state=record.state,
                to_state=target,
                at=datetime.now(timezone.utc),
                attempt=record.attempt,
            )
        )
        record.state = target

    def run_once(self, record: JobRecord) -> JobState:
        """Run one attempt of a pending job and apply the resulting transition."""
        self._transition(record, JobState.RUNNING)
        record.attempt += 1
        job = record.job

        try:
            follow_up = self.worker(job)
        except Exception as e:
            record.last_error = e
            self._handle_failure(record, e)
            return record.state

        self._transition(record, JobState.SUCCEEDED)
        if record.attempt > 1:
            self.logger.info(
                f"{self.job_name} {job.args} succeeded on attempt {record.attempt}",
                extra={"job_id": job.job_id},
            )

        if follow_up is not None:
            record.follow_up = follow_up
            self.enqueue(follow_up)

        return record.state

    def _handle_failure(self, record: JobRecord, error: Exception) -> None:
        job = record.job

        if self.retry_policy.should_retry(record.attempt):
            self._transition(record, JobState.FAILED_RETRYABLE)
            delay = self.retry_policy.delay_for(record.attempt)
            self.logger.warning(
                f"Attempt {record.attempt} failed for {self.job_name} {job.args}: {error}. "
                f"Retrying in {delay:.2f}s "
                f"(attempt {record.attempt + 1}/{self.retry_policy.max_attempts})",
                extra={"job_id": job.job_id, "publisher_id": job.publisher_id},
            )
            self._transition(record, JobState.PENDING)
            self._requeue(record, delay)
            return

        self._transition(record, JobState.FAILED_EXHAUSTED)
        self.logger.warning(
            f"Failed {self.job_name} with {job.args}: {error}",
            extra={"job_id": job.job_id, "attempts": record.attempt},
        )
        self._fire_exhausted(job, error)

    def _fire_exhausted(self, job: PollJob, error: BaseException) -> None:
        if self.on_exhausted is None:
            return

        try:
            self.on_exhausted(job, error)
        except Exception as hook_error:
            self.logger.error(
                f"Exhaustion handler failed for {self.job_name} {job.args}: {hook_error}",
                extra={"job_id": job.job_id},
                exc_info=True,
            )

    def _pop_ready(self) -> List[JobRecord]:
        now = self.clock()
        ready = []
        with self._lock:
            while self._queue and self._queue[0][0] <= now:
                ready.append(heapq.heappop(self._queue)[2])
        return ready

    def _seconds_until_next(self) -> Optional[float]:
        with self._lock:
            if not self._queue:
                return None
            return max(0.0, self._queue[0][0] - self.clock())

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def run_until_idle(self) -> List[JobRecord]:
        """Run queued jobs on the worker pool until nothing is left to do.

        Retries wait out their backoff; follow-up jobs enqueued by workers
        are picked up in the same run.

        Returns:
            All records known to the dispatcher
        """
        with ThreadPoolExecutor(
            max_workers=self.worker_count, thread_name_prefix="geopoll-worker"
        ) as executor:
            in_flight = set()

            while True:
                for record in self._pop_ready():
                    in_flight.add(executor.submit(self.run_once, record))

                wait_for = self._seconds_until_next()

                if not in_flight:
                    if wait_for is None:
                        break
                    self.sleep(wait_for)
                    continue

                done, in_flight = wait(in_flight, timeout=wait_for, return_when=FIRST_COMPLETED)
                for future in done:
                    # run_once handles worker errors; anything here is a dispatcher bug
                    future.result()

        return list(self.records)

    def stats(self) -> Dict[str, int]:
        """Count of known jobs per state."""
        with self._lock:
            counts = Counter(record.state.value for record in self.records)
        return {state.value: counts.get(state.value, 0) for state in JobState}
