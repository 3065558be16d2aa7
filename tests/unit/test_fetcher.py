"""
Unit Tests for the Feed Fetcher
===============================

Tests for single-page fetching, connection setup and failure mapping.
"""

import pytest
from unittest.mock import patch

import requests

from geopoll.ingestion.fetcher import Fetcher, instrument_name
from geopoll.services.connection_builder import INSTRUMENT_HEADER, ConnectionBuilder
from geopoll.utils.exceptions import ErrorCode, FetchError, PublisherNotFoundError


@pytest.fixture
def fetcher(publisher_repo):
    return Fetcher(publisher_repo, timeout=5)


class TestFetch:
    """Successful page fetches."""

    @patch('requests.Session.get')
    def test_returns_features_and_headers(self, mock_get, fetcher, stored_publisher, sample_features, response_factory):
        mock_get.return_value = response_factory(
            {"type": "FeatureCollection", "features": sample_features},
            headers={"Next-Page": "https://pub.example/feed?page=2"},
        )

        result = fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert result.feature_count == 3
        assert result.publisher == stored_publisher
        assert result.page_number == 1
        assert result.header("next-page") == "https://pub.example/feed?page=2"
        mock_get.assert_called_once_with(stored_publisher.endpoint, params=None, timeout=5)

    @patch('requests.Session.get')
    def test_missing_next_page_header(self, mock_get, fetcher, stored_publisher, response_factory):
        mock_get.return_value = response_factory({"features": []})

        result = fetcher.fetch(stored_publisher.id, stored_publisher.endpoint, page_number=3)

        assert result.features == []
        assert result.page_number == 3
        assert result.header("Next-Page") is None

    def test_instrument_name(self, stored_publisher):
        assert instrument_name(stored_publisher) == f"request.publisher.{stored_publisher.id}"


class TestFetchFailures:
    """Every failure raises."""

    def test_unknown_publisher(self, fetcher):
        with pytest.raises(PublisherNotFoundError) as exc_info:
            fetcher.fetch(999, "https://pub.example/feed")

        assert exc_info.value.publisher_id == 999

    @patch('requests.Session.get')
    def test_timeout(self, mock_get, fetcher, stored_publisher):
        mock_get.side_effect = requests.Timeout("read timed out")

        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert exc_info.value.error_code == ErrorCode.FETCH_TIMEOUT
        assert exc_info.value.url == stored_publisher.endpoint

    @patch('requests.Session.get')
    def test_connection_error(self, mock_get, fetcher, stored_publisher):
        mock_get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert exc_info.value.error_code == ErrorCode.FETCH_NETWORK_ERROR

    @patch('requests.Session.get')
    def test_http_error_status(self, mock_get, fetcher, stored_publisher, response_factory):
        mock_get.return_value = response_factory({"error": "down"}, status_code=503)

        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert exc_info.value.error_code == ErrorCode.FETCH_HTTP_STATUS
        assert exc_info.value.status_code == 503

    @patch('requests.Session.get')
    def test_invalid_json(self, mock_get, fetcher, stored_publisher, response_factory):
        mock_get.return_value = response_factory(json_error=ValueError("Expecting value"))

        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert exc_info.value.error_code == ErrorCode.FETCH_PARSE_ERROR

    @pytest.mark.parametrize("payload", [{"type": "FeatureCollection"}, [], {"features": {"id": 1}}])
    @patch('requests.Session.get')
    def test_malformed_body(self, mock_get, payload, fetcher, stored_publisher, response_factory):
        mock_get.return_value = response_factory(payload)

        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(stored_publisher.id, stored_publisher.endpoint)

        assert exc_info.value.error_code == ErrorCode.FETCH_PARSE_ERROR


class TestConnectionBuilder:

    def test_json_connection_headers(self):
        connection = ConnectionBuilder.json("request.publisher.42", url="https://pub.example/feed", timeout=7)

        with connection:
            assert connection.url == "https://pub.example/feed"
            assert connection.timeout == 7
            assert connection.session.headers[INSTRUMENT_HEADER] == "request.publisher.42"
            assert "application/json" in connection.session.headers["Accept"]

    def test_default_timeout_comes_from_settings(self):
        connection = ConnectionBuilder.json("request.publisher.1", url="https://pub.example/feed")

        assert connection.timeout == 30
        connection.close()

    def test_transport_retries_are_disabled(self):
        connection = ConnectionBuilder.json("request.publisher.1", url="https://pub.example/feed")

        adapter = connection.session.get_adapter("https://pub.example/feed")
        assert adapter.max_retries.total == 0
        connection.close()
