"""
Unit Tests for the Job Dispatcher
=================================

Tests for the poll job state machine, bounded retries, exhaustion handling
and follow-up scheduling.
"""

import pytest
from unittest.mock import Mock

from geopoll.config.settings import RetryStrategy
from geopoll.jobs.dispatcher import JobDispatcher
from geopoll.jobs.models import JobRecord, JobState, PollJob
from geopoll.jobs.retry_policy import RetryPolicy
from geopoll.utils.exceptions import FetchError, InvalidTransitionError


def no_delay_policy(max_attempts=5):
    return RetryPolicy(max_attempts=max_attempts, strategy=RetryStrategy.FIXED_DELAY, base_delay=0.0)


class FlakyWorker:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures, follow_up=None):
        self.failures = failures
        self.follow_up = follow_up
        self.calls = []

    def __call__(self, job):
        self.calls.append(job)
        if len(self.calls) <= self.failures:
            raise FetchError(f"timeout #{len(self.calls)}", url=job.url)
        return self.follow_up


@pytest.fixture
def job():
    return PollJob(42, "https://pub.example/feed?page=1", 1)


class TestStateMachine:
    """Per-attempt transitions."""

    def test_success_on_first_attempt(self, job):
        dispatcher = JobDispatcher(worker=Mock(return_value=None), retry_policy=no_delay_policy())
        record = dispatcher.enqueue(job)

        state = dispatcher.run_once(record)

        assert state == JobState.SUCCEEDED
        assert record.attempt == 1
        assert [(t.from_state, t.to_state) for t in record.history] == [
            (JobState.PENDING, JobState.RUNNING),
            (JobState.RUNNING, JobState.SUCCEEDED),
        ]

    def test_failure_goes_back_to_pending(self, job):
        worker = FlakyWorker(failures=1)
        dispatcher = JobDispatcher(worker=worker, retry_policy=no_delay_policy())
        record = dispatcher.enqueue(job)

        state = dispatcher.run_once(record)

        assert state == JobState.PENDING
        assert isinstance(record.last_error, FetchError)
        assert [t.to_state for t in record.history] == [
            JobState.RUNNING,
            JobState.FAILED_RETRYABLE,
            JobState.PENDING,
        ]
        assert dispatcher.pending_count() == 2  # original entry and the requeue

    def test_terminal_job_cannot_run_again(self, job):
        dispatcher = JobDispatcher(worker=Mock(return_value=None), retry_policy=no_delay_policy())
        record = dispatcher.enqueue(job)
        dispatcher.run_once(record)

        with pytest.raises(InvalidTransitionError):
            dispatcher.run_once(record)

    def test_running_job_cannot_start_again(self, job):
        dispatcher = JobDispatcher(worker=Mock(return_value=None))
        record = JobRecord(job=job, state=JobState.RUNNING)

        with pytest.raises(InvalidTransitionError) as exc_info:
            dispatcher.run_once(record)

        assert "running" in str(exc_info.value)


class TestBoundedRetries:
    """Attempt ceiling and exhaustion."""

    def test_five_failures_exhaust_job(self, job):
        worker = FlakyWorker(failures=10)
        on_exhausted = Mock()
        dispatcher = JobDispatcher(
            worker=worker,
            retry_policy=no_delay_policy(),
            on_exhausted=on_exhausted,
            worker_count=1,
        )
        record = dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        assert record.state == JobState.FAILED_EXHAUSTED
        assert record.attempt == 5
        assert len(worker.calls) == 5
        on_exhausted.assert_called_once()
        exhausted_job, error = on_exhausted.call_args[0]
        assert exhausted_job == job
        assert isinstance(error, FetchError)
        assert "timeout #5" in str(error)

    def test_success_on_fifth_attempt_does_not_notify(self, job):
        worker = FlakyWorker(failures=4)
        on_exhausted = Mock()
        dispatcher = JobDispatcher(
            worker=worker,
            retry_policy=no_delay_policy(),
            on_exhausted=on_exhausted,
            worker_count=1,
        )
        record = dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        assert record.state == JobState.SUCCEEDED
        assert record.attempt == 5
        on_exhausted.assert_not_called()

    def test_exhaustion_logs_job_args(self, job, caplog):
        dispatcher = JobDispatcher(
            worker=FlakyWorker(failures=10),
            retry_policy=no_delay_policy(max_attempts=1),
            worker_count=1,
        )
        dispatcher.enqueue(job)

        with caplog.at_level("WARNING", logger="geopoll"):
            dispatcher.run_until_idle()

        assert any(
            "Failed PublisherPoll with (42, 'https://pub.example/feed?page=1', 1)" in message
            for message in caplog.messages
        )

    def test_exhaustion_callback_errors_are_swallowed(self, job):
        on_exhausted = Mock(side_effect=RuntimeError("smtp is down"))
        dispatcher = JobDispatcher(
            worker=FlakyWorker(failures=10),
            retry_policy=no_delay_policy(),
            on_exhausted=on_exhausted,
            worker_count=1,
        )
        record = dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        assert record.state == JobState.FAILED_EXHAUSTED
        on_exhausted.assert_called_once()
        assert record.attempt == 5

    def test_unexpected_errors_consume_attempts(self, job):
        worker = Mock(side_effect=KeyError("boom"))
        dispatcher = JobDispatcher(worker=worker, retry_policy=no_delay_policy(max_attempts=3), worker_count=1)
        record = dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        assert worker.call_count == 3
        assert record.state == JobState.FAILED_EXHAUSTED

    def test_retries_wait_for_backoff(self, job):
        now = [0.0]
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        policy = RetryPolicy(max_attempts=3, strategy=RetryStrategy.FIXED_DELAY, base_delay=15.0, jitter=False)
        dispatcher = JobDispatcher(
            worker=FlakyWorker(failures=2),
            retry_policy=policy,
            worker_count=1,
            clock=lambda: now[0],
            sleep=fake_sleep,
        )
        record = dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        assert record.state == JobState.SUCCEEDED
        assert sleeps == [15.0, 15.0]


class TestFollowUpJobs:
    """Follow-up descriptors returned by workers."""

    def test_follow_up_is_enqueued_and_run(self, job):
        page_two = PollJob(42, "https://pub.example/feed?page=2", 2)
        worker = Mock(side_effect=[page_two, None])
        dispatcher = JobDispatcher(worker=worker, retry_policy=no_delay_policy(), worker_count=1)
        first = dispatcher.enqueue(job)

        records = dispatcher.run_until_idle()

        assert len(records) == 2
        assert first.follow_up == page_two
        assert records[1].job == PollJob(42, "https://pub.example/feed?page=2", 2)
        assert records[1].state == JobState.SUCCEEDED

    def test_follow_up_has_its_own_attempt_budget(self, job):
        page_two = PollJob(42, "https://pub.example/feed?page=2", 2)

        def worker(current):
            if current.page_number == 1:
                return page_two
            raise FetchError("page two is down", url=current.url)

        on_exhausted = Mock()
        dispatcher = JobDispatcher(
            worker=worker,
            retry_policy=no_delay_policy(),
            on_exhausted=on_exhausted,
            worker_count=1,
        )
        first = dispatcher.enqueue(job)

        records = dispatcher.run_until_idle()

        assert first.state == JobState.SUCCEEDED
        assert records[1].state == JobState.FAILED_EXHAUSTED
        assert records[1].attempt == 5
        on_exhausted.assert_called_once()
        assert on_exhausted.call_args[0][0] == page_two

    def test_stats_count_states(self, job):
        dispatcher = JobDispatcher(
            worker=FlakyWorker(failures=10),
            retry_policy=no_delay_policy(max_attempts=2),
            worker_count=2,
        )
        dispatcher.enqueue(job)

        dispatcher.run_until_idle()

        stats = dispatcher.stats()
        assert stats["failed_exhausted"] == 1
        assert stats["succeeded"] == 0
        assert stats["pending"] == 0
