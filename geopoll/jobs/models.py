"""
Poll Job Models
===============

Job descriptors and dispatcher-side job records.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple


class JobState(str, Enum):
    """Lifecycle states of a poll job."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_EXHAUSTED = "failed_exhausted"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED_EXHAUSTED})

ALLOWED_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED_RETRYABLE, JobState.FAILED_EXHAUSTED},
    JobState.FAILED_RETRYABLE: {JobState.PENDING},
    JobState.SUCCEEDED: set(),
    JobState.FAILED_EXHAUSTED: set(),
}


@dataclass(frozen=True)
class PollJob:
    """Unit of work: fetch one page of one publisher's feed."""

    publisher_id: int
    url: str
    page_number: int = 1
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12], compare=False)

    @property
    def args(self) -> Tuple[int, str, int]:
        return (self.publisher_id, self.url, self.page_number)


@dataclass
class Transition:
    """One recorded state change."""
    from_state: JobState
    to_state: JobState
    at: datetime
    attempt: int


@dataclass
class JobRecord:
    """Dispatcher bookkeeping for one enqueued job."""

    job: PollJob
    state: JobState = JobState.PENDING
    attempt: int = 0
    not_before: float = 0.0
    last_error: Optional[BaseException] = None
    follow_up: Optional[PollJob] = None
    history: List[Transition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
