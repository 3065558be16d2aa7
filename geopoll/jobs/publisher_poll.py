"""
Publisher Poll Job
==================

One poll job fetches a page of a publisher's feed, ingests new events and,
when the page produced new events and names a same-host Next-Page, returns
the descriptor of the job for the following page.

When the dispatcher gives up on a job, ``notify_publisher_contact`` looks
the publisher up again by id and emails its contact. The lookup is done
fresh because the failure may have happened before the publisher was ever
resolved; if it still cannot be resolved, no email is sent.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Union

from ..config.settings import GeoPollSettings, get_settings, load_smtp_settings
from ..database.connection import DatabaseConnection
from ..database.models import Publisher
from ..delivery.email_notifier import EmailNotifier, NotificationResult
from ..ingestion.fetcher import Fetcher
from ..services.publisher_update import PublisherUpdate
from ..storage.publisher_repository import PublisherRepository
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.exceptions import ConfigurationError, DatabaseError, NotFoundError
from .dispatcher import JobDispatcher
from .models import PollJob
from .pagination import MAX_PAGE_NUMBER, NEXT_PAGE_HEADER, next_page_job
from .retry_policy import RetryPolicy

Ingestor = Callable[[Sequence[Dict[str, Any]], Publisher], Union[int, Sequence[Any]]]


@dataclass
class PollOutcome:
    """Result of one successful poll attempt."""
    job: PollJob
    feature_count: int
    new_event_count: int
    next_job: Optional[PollJob] = None


class PublisherPoll:
    """Fetch -> ingest -> paginate for one page of a publisher feed."""

    def __init__(
        self,
        fetcher: Fetcher,
        ingestor: Ingestor,
        publisher_repo: PublisherRepository,
        notifier_factory: Optional[Callable[[], EmailNotifier]] = None,
        max_page_number: int = MAX_PAGE_NUMBER,
        next_page_header: str = NEXT_PAGE_HEADER,
    ):
        """Initialize the poll job.

        Args:
            fetcher: Fetches feed pages
            ingestor: Stores features, returns new events (or their count)
            publisher_repo: Used to re-resolve publishers for notifications
            notifier_factory: Builds the notifier when one is needed
            max_page_number: Highest page a chain may reach
            next_page_header: Response header naming the next page
        """
        self.fetcher = fetcher
        self.ingestor = ingestor
        self.publisher_repo = publisher_repo
        self.notifier_factory = notifier_factory
        self.max_page_number = max_page_number
        self.next_page_header = next_page_header
        self.logger = get_logger_for_component("publisher_poll")

    def perform(self, publisher_id: int, url: str, page_number: int = 1) -> PollOutcome:
        """Poll one page. Every failure propagates to the caller."""
        job = PollJob(publisher_id, url, page_number)
        log = self.logger.bind(publisher_id=publisher_id)

        with PerformanceLogger(log, f"poll of page {page_number}", url=url):
            result = self.fetcher.fetch(publisher_id, url, page_number)
            new_events = self.ingestor(result.features, result.publisher)

        new_event_count = new_events if isinstance(new_events, int) else len(new_events)

        next_job = next_page_job(
            new_event_count=new_event_count,
            next_page=result.header(self.next_page_header),
            current_url=url,
            page_number=page_number,
            publisher_id=publisher_id,
            max_page_number=self.max_page_number,
        )

        if next_job is not None:
            log.info(f"Scheduling page {next_job.page_number}: {next_job.url}")

        return PollOutcome(
            job=job,
            feature_count=result.feature_count,
            new_event_count=new_event_count,
            next_job=next_job,
        )

    def run(self, job: PollJob) -> Optional[PollJob]:
        """Dispatcher worker entry point."""
        return self.perform(*job.args).next_job

    def notify_publisher_contact(self, job: PollJob, error: BaseException) -> Optional[NotificationResult]:
        """Exhaustion hook: tell the publisher's contact their endpoint failed.

        Returns None when no notification could be attempted.
        """
        try:
            publisher = self.publisher_repo.get_publisher_or_raise(job.publisher_id)
        except (NotFoundError, DatabaseError) as e:
            self.logger.error(
                f"Cannot notify publisher {job.publisher_id} after exhausted poll: {e}",
                extra={"job_id": job.job_id},
            )
            return None

        if self.notifier_factory is None:
            self.logger.warning(
                f"No notifier configured, publisher {publisher.id} not notified",
                extra={"job_id": job.job_id},
            )
            return None

        try:
            notifier = self.notifier_factory()
        except ConfigurationError as e:
            self.logger.error(
                f"Notification for publisher {publisher.id} not sent: {e}",
                extra=e.to_dict(),
            )
            return None

        return notifier.notify_endpoint_failure(publisher)


def default_notifier_factory(settings: GeoPollSettings) -> Callable[[], EmailNotifier]:
    """Notifier factory that reads SMTP_* settings when first needed."""
    def factory() -> EmailNotifier:
        return EmailNotifier(load_smtp_settings(), app_name=settings.app_name)
    return factory


def build_poll_dispatcher(
    db_connection: DatabaseConnection,
    settings: Optional[GeoPollSettings] = None,
    notifier_factory: Optional[Callable[[], EmailNotifier]] = None,
    **dispatcher_kwargs,
) -> JobDispatcher:
    """Wire a PublisherPoll job into a dispatcher using application settings."""
    settings = settings or get_settings()
    polling = settings.polling

    publisher_repo = PublisherRepository(db_connection)
    poll = PublisherPoll(
        fetcher=Fetcher(publisher_repo, timeout=polling.request_timeout),
        ingestor=PublisherUpdate(db_connection),
        publisher_repo=publisher_repo,
        notifier_factory=notifier_factory or default_notifier_factory(settings),
        max_page_number=polling.max_page_number,
        next_page_header=polling.next_page_header,
    )

    dispatcher_kwargs.setdefault("retry_policy", RetryPolicy.from_settings(polling))
    dispatcher_kwargs.setdefault("worker_count", polling.worker_count)

    return JobDispatcher(
        worker=poll.run,
        on_exhausted=poll.notify_publisher_contact,
        job_name="PublisherPoll",
        **dispatcher_kwargs,
    )
