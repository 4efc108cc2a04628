"""Debounced company search for picking a contact's employer."""

import asyncio
from typing import List, Optional

from . import constants
from .dealcloud_client import DealCloudClient
from .error_handling import ContactCoreError
from .logging_config import get_logger, log_error
from .models import Company
from .resolvers import search_companies

logger = get_logger(__name__)


class CompanySearch:
    """Search-as-you-type over company names.

    Each call to :meth:`schedule` cancels the previous pending lookup and
    starts a new one after a quiet period. Results of a superseded lookup are
    discarded, so :attr:`latest` always belongs to the most recent text.
    """

    def __init__(
        self,
        client: DealCloudClient,
        delay: float = constants.SEARCH_DEBOUNCE_SECONDS,
        limit: int = constants.SEARCH_PAGE_SIZE,
    ):
        self.client = client
        self.delay = delay
        self.limit = limit
        self.text = ""
        self.latest: List[Company] = []
        self.loading = False
        self._task: Optional[asyncio.Task] = None
        self._generation = 0

    def schedule(self, text: str) -> Optional[asyncio.Task]:
        """Queue a lookup for ``text``, superseding any earlier one.

        Blank text clears the results immediately without a remote call.
        Must be called from within a running event loop.
        """
        self._generation += 1
        self.text = text
        self.cancel_pending()

        if not text or not text.strip():
            self.latest = []
            self.loading = False
            return None

        self.loading = True
        self._task = asyncio.create_task(self._run(text, self._generation))
        return self._task

    def cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, text: str, generation: int) -> Optional[List[Company]]:
        await asyncio.sleep(self.delay)

        try:
            found = await search_companies(self.client, text, limit=self.limit)
        except ContactCoreError as e:
            log_error(__name__, "company_search_failed", e, search=text)
            found = []

        if generation != self._generation:
            logger.debug("Discarding stale company search", extra={"search": text})
            return None

        self.latest = found
        self.loading = False
        return found

    async def results(self) -> List[Company]:
        """Wait for the most recent lookup and return its results."""
        while self._task is not None:
            task = self._task
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled() or task is self._task:
                    raise
                # Superseded while we waited; follow the newer lookup
                continue
            if task is self._task:
                break
        return list(self.latest)
