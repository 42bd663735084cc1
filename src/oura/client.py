"""Single-page Oura API v2 fetch client.

API base: https://api.ouraring.com

Endpoints used:
    /v2/usercollection/daily_readiness  — Oura readiness score
    /v2/usercollection/daily_sleep      — Nightly sleep summary
    /v2/usercollection/sleep            — Detailed sleep periods
    /v2/usercollection/heartrate        — Heart-rate samples

One call performs one GET for one page.  Responses are classified before
they leave this module: 2xx decodes into a typed ``Page``, anything else
raises the matching ``OuraAPIError``.  Retry lives in ``src.oura.retry``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

import httpx
from pydantic import ValidationError

from src.oura.errors import DecodingError, NetworkError, error_for_status
from src.oura.records import (
    DailyReadiness,
    DailySleep,
    HeartRateSample,
    OuraRecord,
    Page,
    SleepPeriod,
)

logger = logging.getLogger("ringpulse.oura.client")

OURA_API_BASE = "https://api.ouraring.com"
_COLLECTION_PATH = "/v2/usercollection"


class Endpoint(str, Enum):
    """Resource collections fetched by the refresh engine."""

    DAILY_READINESS = "daily_readiness"
    DAILY_SLEEP = "daily_sleep"
    SLEEP = "sleep"
    HEARTRATE = "heartrate"

    @property
    def record_type(self) -> type[OuraRecord]:
        return _RECORD_TYPES[self]


_RECORD_TYPES: dict[Endpoint, type[OuraRecord]] = {
    Endpoint.DAILY_READINESS: DailyReadiness,
    Endpoint.DAILY_SLEEP: DailySleep,
    Endpoint.SLEEP: SleepPeriod,
    Endpoint.HEARTRATE: HeartRateSample,
}


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range.  ``start`` never exceeds ``end``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")

    @classmethod
    def single_day(cls, day: date) -> "DateRange":
        return cls(start=day, end=day)

    @classmethod
    def trailing(cls, days: int, today: date) -> "DateRange":
        """``today`` minus ``days`` through ``today``."""
        if days < 0:
            raise ValueError(f"Look-back window must be non-negative, got {days}")
        return cls(start=today - timedelta(days=days), end=today)

    def as_params(self) -> dict[str, str]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


@dataclass(frozen=True)
class PageRequest:
    """Everything needed to fetch one page of one collection."""

    endpoint: Endpoint
    date_range: DateRange
    next_token: str | None = None

    def params(self) -> dict[str, str]:
        params = self.date_range.as_params()
        if self.next_token is not None:
            params["next_token"] = self.next_token
        return params

    def next_page(self, next_token: str) -> "PageRequest":
        return PageRequest(self.endpoint, self.date_range, next_token)


class OuraClient:
    """Authenticated single-page GETs against the Oura collections API.

    Args:
        base_url:    API origin, e.g. ``https://api.ouraring.com``.
        http_client: Optional pre-configured ``httpx.AsyncClient`` (tests,
                     connection reuse).  When omitted a client is opened
                     per request.
        timeout:     Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = OURA_API_BASE,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    def url_for(self, endpoint: Endpoint) -> str:
        return f"{self._base_url}{_COLLECTION_PATH}/{endpoint.value}"

    @staticmethod
    def _build_headers(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def get(self, request: PageRequest, token: str) -> Page:
        """Fetch and decode one page.

        Args:
            request: Endpoint, date range and optional cursor.
            token:   Bearer credential.

        Returns:
            A ``Page`` of the endpoint's record type.

        Raises:
            NetworkError:  Transport failure (connect, timeout, reset).
            DecodingError: 2xx body that is not the expected JSON shape.
            OuraAPIError:  Classified non-2xx response.
        """
        url = self.url_for(request.endpoint)
        headers = self._build_headers(token)
        params = request.params()

        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    url, params=params, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.RequestError as exc:
            raise NetworkError(f"Network error: {exc}") from exc

        logger.debug(
            "GET %s %s -> %d", request.endpoint.value, params, response.status_code
        )

        if not response.is_success:
            raise error_for_status(response.status_code, response.text, response.headers)

        return self._decode(request.endpoint, response)

    @staticmethod
    def _decode(endpoint: Endpoint, response: httpx.Response) -> Page:
        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodingError(
                f"Failed to decode API response: {exc}", body=response.text
            ) from exc

        try:
            return Page[endpoint.record_type].model_validate(payload)  # type: ignore[misc]
        except ValidationError as exc:
            raise DecodingError(
                f"Failed to decode {endpoint.value} response: "
                f"{exc.error_count()} validation error(s)",
                body=response.text,
            ) from exc
