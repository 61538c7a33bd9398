# search.py
import asyncio
import logging

from errors import ApiError

logger = logging.getLogger("storefront.search")


class SearchController:
    """
    Search-as-you-type. Each query gets a sequence number; only the latest
    query's result is kept, whatever order the responses arrive in.
    """
    def __init__(self, search_fn, min_length: int = 3, debounce: float = 0.3):
        self.search_fn = search_fn
        self.min_length = min_length
        self.debounce = debounce
        self.results = []
        self.last_query = ""
        self._seq = 0

    def is_current(self, seq: int) -> bool:
        return seq == self._seq

    async def search(self, query: str):
        """Returns the results, or None when a newer query superseded this one."""
        self._seq += 1
        seq = self._seq
        query = (query or "").strip()
        if len(query) < self.min_length:
            self.results = []
            self.last_query = query
            return []
        if self.debounce:
            await asyncio.sleep(self.debounce)
            if not self.is_current(seq):
                return None
        try:
            results = await self.search_fn(query)
        except ApiError as e:
            logger.error(f"Search for {query!r} failed: {e}")
            return None if not self.is_current(seq) else self.results
        if not self.is_current(seq):
            logger.debug(f"Dropping stale results for {query!r}")
            return None
        self.results = results
        self.last_query = query
        return results
