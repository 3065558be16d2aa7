"""
GeoPoll Poll Scheduler
======================

Enqueues page 1 of every active publisher's feed onto a job dispatcher.
Designed to be called periodically, by cron or by the CLI's service loop.
"""

from datetime import datetime
from typing import Any, Dict, List

from ..jobs.dispatcher import JobDispatcher
from ..jobs.models import JobRecord, PollJob
from ..storage.publisher_repository import PublisherRepository
from ..utils.logging import get_logger_for_component


class PollScheduler:
    """Schedules poll jobs for all active publishers."""

    def __init__(self, publisher_repo: PublisherRepository, dispatcher: JobDispatcher):
        self.publisher_repo = publisher_repo
        self.dispatcher = dispatcher
        self.logger = get_logger_for_component("scheduler")

    def enqueue_active_publishers(self) -> List[JobRecord]:
        """Enqueue a first-page job per active publisher."""
        publishers = self.publisher_repo.get_active_publishers()
        if not publishers:
            self.logger.warning("No active publishers found for polling")
            return []

        records = [
            self.dispatcher.enqueue(PollJob(publisher.id, publisher.endpoint, 1))
            for publisher in publishers
        ]

        self.logger.info(
            f"Enqueued {len(records)} publisher polls",
            extra={"publisher_ids": [p.id for p in publishers]},
        )
        return records

    def run_cycle(self) -> Dict[str, Any]:
        """Enqueue all active publishers and drain the dispatcher.

        Returns:
            Summary with per-state job counts
        """
        started_at = datetime.now()
        scheduled = self.enqueue_active_publishers()
        self.dispatcher.run_until_idle()

        summary = {
            "started_at": started_at.isoformat(),
            "duration_seconds": (datetime.now() - started_at).total_seconds(),
            "publishers_scheduled": len(scheduled),
            "jobs": self.dispatcher.stats(),
        }
        self.logger.info(f"Poll cycle complete: {summary['jobs']}", extra={"summary": summary})
        return summary
