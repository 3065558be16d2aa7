"""
Connection Builder
==================

Builds requests sessions for publisher endpoints. Each session carries an
instrumentation name (e.g. ``request.publisher.42``) that is sent as a request
header and used as logging context, so traffic can be traced per publisher.

Sessions never retry at the transport level: a poll job makes exactly one
request per attempt and retries are owned by the job dispatcher.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ..config.settings import get_settings

INSTRUMENT_HEADER = "X-Request-Instrument"


@dataclass
class JsonConnection:
    """A session bound to one URL, expecting JSON back."""

    session: requests.Session
    url: str
    instrument: str
    timeout: float

    def get(self, params: Optional[Dict[str, str]] = None) -> requests.Response:
        """Perform a single GET against the bound URL."""
        return self.session.get(self.url, params=params, timeout=self.timeout)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "JsonConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ConnectionBuilder:
    """Factory for per-publisher HTTP connections."""

    @staticmethod
    def json(instrument: str, url: str, timeout: Optional[float] = None) -> JsonConnection:
        """Build a JSON connection for ``url`` tagged with ``instrument``.

        Args:
            instrument: Instrumentation name for tracing
            url: Absolute URL to request
            timeout: Request timeout in seconds (default from config)
        """
        settings = get_settings()

        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(
            {
                "User-Agent": f"{settings.polling.user_agent} ({settings.app_name}/{settings.version})",
                "Accept": "application/json, application/geo+json",
                INSTRUMENT_HEADER: instrument,
            }
        )

        return JsonConnection(
            session=session,
            url=url,
            instrument=instrument,
            timeout=timeout or settings.polling.request_timeout,
        )
