"""Drain every page of a collection by following ``next_token``.

A page with no cursor ends the drain.  Any error on any page aborts the
whole drain; partial results are discarded, never returned.

A server that never stops returning a cursor would loop forever, so the
drainer enforces an optional page ceiling.  Hitting it raises
``PaginationLimitError`` rather than silently truncating.
"""

from __future__ import annotations

import logging

from src.oura.client import DateRange, Endpoint, PageRequest
from src.oura.errors import PaginationLimitError
from src.oura.records import OuraRecord
from src.oura.retry import RetryingFetcher

logger = logging.getLogger("ringpulse.oura.pagination")

DEFAULT_MAX_PAGES = 500


class PageDrainer:
    """Concatenates all pages of one endpoint/date-range query.

    Args:
        fetcher:   Retrying single-page fetcher.
        max_pages: Page ceiling; None removes it.
    """

    def __init__(self, fetcher: RetryingFetcher, max_pages: int | None = DEFAULT_MAX_PAGES) -> None:
        if max_pages is not None and max_pages < 1:
            raise ValueError(f"max_pages must be >= 1 or None, got {max_pages}")
        self._fetcher = fetcher
        self._max_pages = max_pages

    async def drain(self, endpoint: Endpoint, date_range: DateRange, token: str) -> list[OuraRecord]:
        """Return the records of every page, in server order.

        Raises:
            OuraAPIError:         Whatever the fetcher surfaced for any page.
            PaginationLimitError: If the page ceiling is reached.
        """
        records: list[OuraRecord] = []
        request = PageRequest(endpoint, date_range)
        pages = 0

        while True:
            if self._max_pages is not None and pages >= self._max_pages:
                raise PaginationLimitError(
                    f"{endpoint.value} returned more than {self._max_pages} pages "
                    f"for {date_range.start}..{date_range.end}"
                )

            page = await self._fetcher.fetch(request, token)
            pages += 1
            records.extend(page.data)

            if page.next_token is None:
                break
            request = request.next_page(page.next_token)

        logger.debug(
            "Drained %s %s..%s: %d record(s) over %d page(s)",
            endpoint.value,
            date_range.start,
            date_range.end,
            len(records),
            pages,
        )
        return records
