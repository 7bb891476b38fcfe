from dataclasses import dataclass

import httpx

from erp_insights.core.cache import Cache
from erp_insights.core.config import Settings
from erp_insights.core.erp.analysis import AggregationOrchestrator
from erp_insights.core.erp.auth import TokenManager
from erp_insights.core.erp.client import RequestExecutor
from erp_insights.core.erp.partners import PartnerSearch


@dataclass
class ErpServices:
    """Everything that talks to the ERP, wired once per process."""

    http_client: httpx.AsyncClient
    token_manager: TokenManager
    executor: RequestExecutor
    orchestrator: AggregationOrchestrator
    partner_search: PartnerSearch
    cache: Cache

    async def aclose(self):
        await self.http_client.aclose()
        close_cache = getattr(self.cache, "close", None)
        if close_cache is not None:
            await close_cache()


def build_erp_services(
    settings: Settings, cache: Cache, http_client: httpx.AsyncClient
) -> ErpServices:
    """
    Wire TokenManager -> RequestExecutor -> orchestrator/search.

    Args:
        settings: Application settings (URLs, credentials, timeouts, TTLs)
        cache: Cache collaborator shared by analysis and search
        http_client: Shared client, one connection pool for every ERP call
    """
    token_manager = TokenManager(
        http_client,
        login_url=settings.ERP_LOGIN_URL,
        credentials=settings.erp_login_headers,
        timeout=settings.ERP_LOGIN_TIMEOUT_SECONDS,
    )
    executor = RequestExecutor(
        http_client,
        token_manager,
        timeout=settings.ERP_REQUEST_TIMEOUT_SECONDS,
    )
    orchestrator = AggregationOrchestrator(
        executor,
        cache,
        query_url=settings.ERP_QUERY_URL,
        cache_ttl_seconds=settings.ANALYSIS_CACHE_TTL_SECONDS,
    )
    partner_search = PartnerSearch(
        executor,
        cache,
        query_url=settings.ERP_QUERY_URL,
        cache_ttl_seconds=settings.CLIENT_SEARCH_CACHE_TTL_SECONDS,
    )
    return ErpServices(
        http_client=http_client,
        token_manager=token_manager,
        executor=executor,
        orchestrator=orchestrator,
        partner_search=partner_search,
        cache=cache,
    )
