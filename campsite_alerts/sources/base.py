"""
Base scraper class for park reservation systems.

All scrapers inherit from BaseScraper and implement:
- fetch_availability(): Query the upstream and normalize into AvailableSites
- get_reservation_url(): Deep link for booking one site

check_availability() is the public entry point; it fails with an
UpstreamError subclass (see exceptions.py) and never filters by alert
criteria, which is criteria_matching's job.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

import requests

from ..config import ScraperConfig, get_scraper_config
from ..exceptions import (
    ResourceNotFoundError,
    TransientUpstreamError,
    UpstreamError,
)
from ..models import AvailableSite, CampsiteAlert, ParkSystem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseScraper(ABC):
    """
    Abstract base class for park system scrapers.

    Provides common functionality:
    - HTTP requests with a hard timeout
    - Classification of failures into transient / definitive errors
    - Retries with linear backoff for transient failures

    Subclasses must set:
    - park_system: The ParkSystem enum value
    - name: Human readable name used in logs
    - parser_implemented: False when responses cannot be parsed yet
    """

    park_system: ParkSystem
    name: str = "BaseScraper"
    parser_implemented: bool = True

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the scraper."""
        self.config = config or get_scraper_config()
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": self.config.user_agent,
            "Accept-Language": "en-US,en;q=0.5",
        })
        self._sleep = sleep

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def check_availability(self, alert: CampsiteAlert) -> list[AvailableSite]:
        """
        Fetch every available site for the alert's park/campground and window.

        Returns:
            Normalized AvailableSites (unfiltered). An empty list means no
            availability, or no parser for this system (see parser_implemented).

        Raises:
            UpstreamError: network, HTTP, payload or configuration failure
        """
        logger.info(
            f"Checking {self.name} availability for alert {alert.alert_id} "
            f"(park {alert.park_id}, campground {alert.campground_id})"
        )
        self.validate_alert(alert)

        sites = self.fetch_availability(alert)

        logger.info(f"{self.name}: {len(sites)} sites with availability for alert {alert.alert_id}")
        return sites

    def validate_alert(self, alert: CampsiteAlert) -> None:
        """Fail fast on alerts this system cannot answer. Default: accept all."""

    @abstractmethod
    def fetch_availability(self, alert: CampsiteAlert) -> list[AvailableSite]:
        """Query the upstream and return normalized sites."""
        pass

    @abstractmethod
    def get_reservation_url(self, site_id: str, campground_id: str) -> str:
        """Stable booking link for a site."""
        pass

    # =========================================================================
    # HTTP HELPERS
    # =========================================================================

    def _request(
        self,
        method: str,
        url: str,
        not_found_message: Optional[str] = None,
        raise_for_status: bool = True,
        **kwargs,
    ) -> requests.Response:
        """
        Make an HTTP request and classify failures.

        Raises:
            TransientUpstreamError: timeout, connection error, 429 or 5xx
            ResourceNotFoundError: 404, or a 4xx body saying "not found"
            UpstreamError: any other non-2xx status
        """
        kwargs.setdefault("timeout", self.config.request_timeout)

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise TransientUpstreamError(f"{self.name} request timed out: {url}", source=self.name) from e
        except requests.RequestException as e:
            raise TransientUpstreamError(f"{self.name} request failed for {url}: {e}", source=self.name) from e

        if response.ok or not raise_for_status:
            return response

        body = response.text or ""
        logger.error(f"{self.name} error response {response.status_code} for {url}: {body[:300]}")

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientUpstreamError(
                f"{self.name} error: {response.status_code} {response.reason}", source=self.name
            )
        if response.status_code == 404 or "not found" in body.lower():
            message = not_found_message or f"{self.name} resource not found: {url}"
            raise ResourceNotFoundError(message, source=self.name)
        raise UpstreamError(f"{self.name} error: {response.status_code} {response.reason}", source=self.name)

    def _json(self, response: requests.Response) -> dict:
        """Decode a JSON body; garbage counts as a transient failure."""
        try:
            data = response.json()
        except ValueError as e:
            raise TransientUpstreamError(f"{self.name} returned unparseable JSON", source=self.name) from e
        if not isinstance(data, dict):
            raise TransientUpstreamError(
                f"{self.name} returned unexpected payload type {type(data).__name__}", source=self.name
            )
        return data

    def _with_retry(self, fn: Callable[[], T], context: str) -> T:
        """
        Call fn, retrying transient failures with linear backoff.

        Waits retry_base_delay * attempt between attempts. Definitive errors
        (not found, configuration, other 4xx) are raised immediately.
        """
        attempts = max(1, self.config.retry_attempts)
        last_error: Optional[TransientUpstreamError] = None

        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except TransientUpstreamError as e:
                last_error = e
                logger.warning(f"{self.name} {context} attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    self._sleep(self.config.retry_base_delay * attempt)

        raise last_error

    def _unparsed(self, what: str) -> list[AvailableSite]:
        """Zero availability because no parser exists for this response (not a failure)."""
        logger.info(f"{self.name}: {what} parsing not implemented, reporting no availability")
        return []
