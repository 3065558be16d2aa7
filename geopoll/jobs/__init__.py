"""
GeoPoll Jobs
============

Poll job descriptors, the pagination decision, the retry policy and the
dispatcher that runs jobs through their state machine.
"""

from .models import JobRecord, JobState, PollJob
from .pagination import MAX_PAGE_NUMBER, NEXT_PAGE_HEADER, next_page_job, valid_next_page
from .retry_policy import RetryPolicy
from .dispatcher import JobDispatcher
from .publisher_poll import PollOutcome, PublisherPoll, build_poll_dispatcher

__all__ = [
    "JobRecord",
    "JobState",
    "PollJob",
    "MAX_PAGE_NUMBER",
    "NEXT_PAGE_HEADER",
    "next_page_job",
    "valid_next_page",
    "RetryPolicy",
    "JobDispatcher",
    "PollOutcome",
    "PublisherPoll",
    "build_poll_dispatcher",
]
