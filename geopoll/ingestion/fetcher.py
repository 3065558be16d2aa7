"""
Publisher Feed Fetcher
======================

Resolves a publisher and performs one synchronous GET against a page of its
feed, returning the decoded features and the response headers.

Every failure raises; there is no local recovery. Lookup failures raise
PublisherNotFoundError, everything on the HTTP side raises FetchError.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

from ..database.models import Publisher
from ..services.connection_builder import ConnectionBuilder, JsonConnection
from ..storage.publisher_repository import PublisherRepository
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ErrorCode, FetchError


@dataclass
class FetchResult:
    """One fetched page of a publisher feed."""

    publisher: Publisher
    url: str
    page_number: int
    features: List[Dict[str, Any]]
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    status_code: int = 200
    elapsed_seconds: float = 0.0

    @property
    def feature_count(self) -> int:
        return len(self.features)

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name)


def instrument_name(publisher: Publisher) -> str:
    """Instrumentation name used for a publisher's requests."""
    return f"request.publisher.{publisher.id}"


class Fetcher:
    """Fetches single feed pages for publishers."""

    def __init__(
        self,
        publisher_repo: PublisherRepository,
        connection_factory: Callable[..., JsonConnection] = ConnectionBuilder.json,
        timeout: Optional[float] = None,
    ):
        """Initialize fetcher.

        Args:
            publisher_repo: Repository used to resolve publishers
            connection_factory: Builds a connection from (instrument, url)
            timeout: Request timeout override in seconds
        """
        self.publisher_repo = publisher_repo
        self.connection_factory = connection_factory
        self.timeout = timeout
        self.logger = get_logger_for_component("fetcher")

    def fetch(self, publisher_id: int, url: str, page_number: int = 1) -> FetchResult:
        """Fetch one page of a publisher's feed.

        Args:
            publisher_id: Publisher to resolve
            url: Page URL to request
            page_number: 1-based page number within the pagination chain

        Returns:
            FetchResult with features and headers

        Raises:
            PublisherNotFoundError: If the publisher id does not resolve
            FetchError: On transport, status or decoding failure
        """
        publisher = self.publisher_repo.get_publisher_or_raise(publisher_id)
        instrument = instrument_name(publisher)

        self.logger.debug(
            f"Fetching page {page_number} for publisher {publisher.id}: {url}",
            extra={"instrument": instrument, "page_number": page_number},
        )

        start_time = time.time()
        with self.connection_factory(instrument, url=url, timeout=self.timeout) as connection:
            response = self._get(connection, publisher, url)
        elapsed = time.time() - start_time

        features = self._decode_features(response, publisher, url)

        self.logger.info(
            f"Fetched {len(features)} features from {url} in {elapsed:.2f}s",
            extra={"publisher_id": publisher.id, "page_number": page_number},
        )

        return FetchResult(
            publisher=publisher,
            url=url,
            page_number=page_number,
            features=features,
            headers=CaseInsensitiveDict(response.headers),
            status_code=response.status_code,
            elapsed_seconds=elapsed,
        )

    def _get(self, connection: JsonConnection, publisher: Publisher, url: str) -> requests.Response:
        try:
            response = connection.get()
        except requests.Timeout as e:
            raise FetchError(
                f"Request timeout for {url}: {e}",
                url=url,
                publisher_id=publisher.id,
                error_code=ErrorCode.FETCH_TIMEOUT,
            ) from e
        except requests.RequestException as e:
            raise FetchError(
                f"Request failed for {url}: {e}",
                url=url,
                publisher_id=publisher.id,
                error_code=ErrorCode.FETCH_NETWORK_ERROR,
            ) from e

        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"HTTP {response.status_code} from {url}: {response.reason}",
                url=url,
                publisher_id=publisher.id,
                status_code=response.status_code,
                error_code=ErrorCode.FETCH_HTTP_STATUS,
            )

        return response

    def _decode_features(self, response: requests.Response, publisher: Publisher, url: str) -> List[Dict[str, Any]]:
        try:
            body = response.json()
        except ValueError as e:
            raise FetchError(
                f"Response from {url} is not valid JSON: {e}",
                url=url,
                publisher_id=publisher.id,
                status_code=response.status_code,
                error_code=ErrorCode.FETCH_PARSE_ERROR,
            ) from e

        if not isinstance(body, dict) or "features" not in body:
            raise FetchError(
                f"Response from {url} has no 'features' field",
                url=url,
                publisher_id=publisher.id,
                status_code=response.status_code,
                error_code=ErrorCode.FETCH_PARSE_ERROR,
            )

        features = body["features"]
        if not isinstance(features, list):
            raise FetchError(
                f"'features' in response from {url} is not a list",
                url=url,
                publisher_id=publisher.id,
                status_code=response.status_code,
                error_code=ErrorCode.FETCH_PARSE_ERROR,
            )

        return features
