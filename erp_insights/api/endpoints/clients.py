import logging

from fastapi import APIRouter, Query

from erp_insights.core import schemas
from erp_insights.api.dependencies import erp_http_exception, partner_search_dep, user_dep

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("/search", response_model=schemas.ClientSearchResult)
async def search_clients(
    current_user: user_dep,
    partner_search: partner_search_dep,
    q: str = "",
    limit: int = Query(default=20, ge=1, le=100),
):
    """
    Quick search of active clients by name or CPF/CNPJ.
    Queries shorter than 2 characters return an empty result.
    Users with a seller code only see that seller's clients; admins see all.
    """
    seller_code = None
    if current_user.role != schemas.UserRole.ADMIN.value:
        seller_code = current_user.seller_code

    try:
        return await partner_search.search_clients(q, limit=limit, seller_code=seller_code)
    except Exception as error:
        logging.error(f"Client search failed for '{q}': {error}")
        raise erp_http_exception(error)
