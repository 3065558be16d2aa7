"""
Integration Tests for the Poll Flow
===================================

Runs real fetcher, ingestion, dispatcher and notifier wiring against a
temporary database, with HTTP and SMTP replaced by mocks.
"""

import pytest
from unittest.mock import MagicMock, patch

import requests

from geopoll.config.settings import GeoPollSettings, PollingSettings, RetryStrategy
from geopoll.delivery.email_notifier import EmailNotifier
from geopoll.jobs import JobState, PollJob, build_poll_dispatcher


@pytest.fixture
def settings():
    return GeoPollSettings(
        polling=PollingSettings(
            retry_strategy=RetryStrategy.FIXED_DELAY,
            retry_base_delay=0.0,
            worker_count=1,
        )
    )


@pytest.fixture
def smtp_server():
    server = MagicMock()
    server.has_extn.return_value = True
    return server


@pytest.fixture
def notifier_factory(smtp_settings, smtp_server):
    smtp_factory = MagicMock()
    smtp_factory.return_value.__enter__.return_value = smtp_server
    return lambda: EmailNotifier(smtp_settings, smtp_factory=smtp_factory)


@pytest.fixture
def page(response_factory):
    def build(features, next_page=None):
        headers = {"Next-Page": next_page} if next_page else {}
        return response_factory({"type": "FeatureCollection", "features": features}, headers=headers)
    return build


class TestPaginationFlow:

    @patch('requests.Session.get')
    def test_follows_same_host_pages_until_no_new_events(
        self, mock_get, db_connection, event_repo, stored_publisher, sample_features, settings, notifier_factory, page
    ):
        pages = {
            "https://pub.example/feed?page=1": page(sample_features[:2], "https://pub.example/feed?page=2"),
            "https://pub.example/feed?page=2": page(sample_features[2:], "https://pub.example/feed?page=3"),
            # Only already-stored features, so the chain stops here
            "https://pub.example/feed?page=3": page(sample_features, "https://pub.example/feed?page=4"),
        }
        mock_get.side_effect = lambda url, **kwargs: pages[url]

        dispatcher = build_poll_dispatcher(db_connection, settings, notifier_factory=notifier_factory)
        dispatcher.enqueue(PollJob(stored_publisher.id, stored_publisher.endpoint, 1))
        records = dispatcher.run_until_idle()

        assert [r.job.page_number for r in records] == [1, 2, 3]
        assert all(r.state == JobState.SUCCEEDED for r in records)
        assert event_repo.count_events(stored_publisher.id) == 3

    @patch('requests.Session.get')
    def test_foreign_next_page_is_not_followed(
        self, mock_get, db_connection, stored_publisher, sample_features, settings, notifier_factory, page
    ):
        mock_get.return_value = page(sample_features, "https://evil.example/x")

        dispatcher = build_poll_dispatcher(db_connection, settings, notifier_factory=notifier_factory)
        dispatcher.enqueue(PollJob(stored_publisher.id, stored_publisher.endpoint, 1))
        records = dispatcher.run_until_idle()

        assert len(records) == 1
        mock_get.assert_called_once()


class TestExhaustionFlow:

    @patch('requests.Session.get')
    def test_timeout_on_every_attempt_notifies_once(
        self, mock_get, db_connection, stored_publisher, settings, notifier_factory, smtp_server
    ):
        mock_get.side_effect = requests.Timeout("read timed out")

        dispatcher = build_poll_dispatcher(db_connection, settings, notifier_factory=notifier_factory)
        record = dispatcher.enqueue(PollJob(stored_publisher.id, stored_publisher.endpoint, 1))
        dispatcher.run_until_idle()

        assert record.state == JobState.FAILED_EXHAUSTED
        assert mock_get.call_count == 5
        smtp_server.send_message.assert_called_once()

        message = smtp_server.send_message.call_args[0][0]
        assert message["To"] == "contact@pub.example"
        html_body = message.get_body(preferencelist=("html",)).get_content()
        assert "City incidents feed" in html_body
        assert "https://pub.example/feed?page=1" in html_body

    @patch('requests.Session.get')
    def test_recovery_before_last_attempt_sends_nothing(
        self, mock_get, db_connection, stored_publisher, sample_features, settings, notifier_factory, smtp_server, page
    ):
        mock_get.side_effect = [requests.Timeout("read timed out")] * 4 + [page(sample_features)]

        dispatcher = build_poll_dispatcher(db_connection, settings, notifier_factory=notifier_factory)
        record = dispatcher.enqueue(PollJob(stored_publisher.id, stored_publisher.endpoint, 1))
        dispatcher.run_until_idle()

        assert record.state == JobState.SUCCEEDED
        assert record.attempt == 5
        smtp_server.send_message.assert_not_called()

    @patch('requests.Session.get')
    def test_unknown_publisher_exhausts_without_email(
        self, mock_get, db_connection, settings, notifier_factory, smtp_server
    ):
        dispatcher = build_poll_dispatcher(db_connection, settings, notifier_factory=notifier_factory)
        record = dispatcher.enqueue(PollJob(999, "https://pub.example/feed", 1))
        dispatcher.run_until_idle()

        assert record.state == JobState.FAILED_EXHAUSTED
        assert record.attempt == 5
        mock_get.assert_not_called()
        smtp_server.send_message.assert_not_called()

    @patch('requests.Session.get')
    def test_missing_smtp_configuration_does_not_break_exhaustion(
        self, mock_get, db_connection, stored_publisher, settings, no_smtp_env
    ):
        mock_get.side_effect = requests.Timeout("read timed out")

        dispatcher = build_poll_dispatcher(db_connection, settings)
        record = dispatcher.enqueue(PollJob(stored_publisher.id, stored_publisher.endpoint, 1))
        dispatcher.run_until_idle()

        assert record.state == JobState.FAILED_EXHAUSTED
        assert mock_get.call_count == 5
