import logging
from typing import List, Optional

from erp_insights.core.cache import Cache
from erp_insights.core.erp import mapper
from erp_insights.core.erp.client import RequestExecutor
from erp_insights.core.erp.mapper import MappedRecord
from erp_insights.core.erp.queries import build_client_search_query
from erp_insights.core.schemas import ClientSearchResult

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_SEARCH_TTL_SECONDS = 5 * 60


class PartnerSearch:
    """Quick client lookup for the dashboard's autocomplete fields."""

    def __init__(
        self,
        executor: RequestExecutor,
        cache: Cache,
        query_url: str,
        cache_ttl_seconds: int = DEFAULT_SEARCH_TTL_SECONDS,
    ):
        self.executor = executor
        self.cache = cache
        self.query_url = query_url
        self.cache_ttl_seconds = cache_ttl_seconds

    async def search_clients(
        self, query: str, limit: int = 20, seller_code: Optional[int] = None
    ) -> ClientSearchResult:
        """
        Search active clients by name or document number.

        Args:
            query: Text typed by the user (at least 2 characters)
            limit: Maximum number of clients returned
            seller_code: Restrict to the clients of one seller (CODVEND)

        Returns:
            Matching clients, cached for a few minutes per query
        """
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return ClientSearchResult()

        cache_key = f"search:clients:{query.lower()}:{limit}:{seller_code}"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return ClientSearchResult.model_validate(cached)

        clients = await self._fetch_pages(query, limit, seller_code)
        result = ClientSearchResult(clients=clients, total=len(clients))

        await self.cache.set(cache_key, result.model_dump(mode="json"), self.cache_ttl_seconds)
        logger.info(f"Client search '{query}': {result.total} results")
        return result

    async def _fetch_pages(
        self, query: str, limit: int, seller_code: Optional[int]
    ) -> List[MappedRecord]:
        # The ERP picks the page size, so stop as soon as enough rows arrived
        clients: List[MappedRecord] = []
        page = 0
        while len(clients) < limit:
            response = await self.executor.execute(
                self.query_url, build_client_search_query(query, seller_code, page)
            )
            records = mapper.map_response(response)
            clients.extend(records)
            if not records or not mapper.has_more_results(response):
                break
            page += 1

        return clients[:limit]
