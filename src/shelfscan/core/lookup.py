"""Resolve an accepted ISBN to title/author for the metadata screen."""

from __future__ import annotations

import asyncio
import time

import structlog

from .client import CatalogClient
from .errors import LookupFailure
from .models import CancelToken, MetadataEntry, Source

log = structlog.get_logger()

MIN_LOADING_SECONDS = 0.3


def apply_lookup(screen: MetadataEntry, data: dict, detailed: bool) -> None:
    """Fill the record from a lookup result and open the manual inputs it lacks.

    An empty dict means nothing was found; every tracked field then falls
    back to manual entry.
    """
    record = screen.record

    title = (data.get("title") or "").strip()
    if title:
        record.title = title
        record.title_source = Source.REMOTE
        screen.manual_title = False
    else:
        record.title = ""
        record.title_source = Source.MANUAL
        screen.manual_title = True

    if not detailed:
        return
    author = (data.get("author") or "").strip()
    if author:
        record.author = author
        record.author_source = Source.REMOTE
        screen.manual_author = False
    else:
        record.author = ""
        record.author_source = Source.MANUAL
        screen.manual_author = True


class MetadataFetcher:
    """One lookup per ISBN, with a floor on how long loading stays visible.

    A response faster than min_loading keeps the indicator up for the rest
    of the window; a slower one clears it as soon as it lands. Failures of
    any kind degrade to manual entry and are never raised.
    """

    def __init__(
        self,
        client: CatalogClient,
        min_loading: float = MIN_LOADING_SECONDS,
        detailed: bool = False,
    ) -> None:
        self.client = client
        self.min_loading = min_loading
        self.detailed = detailed

    async def fetch(self, screen: MetadataEntry, token: CancelToken) -> bool:
        """Run the lookup for screen.record. Returns True if a title was found."""
        isbn = screen.record.isbn
        screen.loading = True
        started = time.monotonic()

        try:
            data = await self.client.lookup(isbn)
        except LookupFailure as e:
            log.warning("lookup_failed_manual_entry", isbn=isbn, error=str(e))
            data = {}

        if token.alive:
            apply_lookup(screen, data, self.detailed)
            log.info(
                "metadata_resolved",
                isbn=isbn,
                title_found=not screen.manual_title,
                manual_author=screen.manual_author,
            )
        else:
            log.debug("lookup_result_discarded", isbn=isbn)

        remaining = self.min_loading - (time.monotonic() - started)
        if remaining > 0:
            await asyncio.sleep(remaining)

        if token.alive:
            screen.loading = False
        return token.alive and not screen.manual_title
