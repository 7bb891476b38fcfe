from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status

from erp_insights.core import models
from erp_insights.core.erp.analysis import AggregationOrchestrator
from erp_insights.core.erp.auth import TokenManager
from erp_insights.core.erp.errors import AuthError, ErpError, TransientError
from erp_insights.core.erp.partners import PartnerSearch
from erp_insights.core.erp.services import ErpServices
from erp_insights.core.security import get_current_user, validate_admin_role


def get_erp_services(request: Request) -> ErpServices:
    return request.app.state.erp


def get_orchestrator(
    erp: Annotated[ErpServices, Depends(get_erp_services)],
) -> AggregationOrchestrator:
    return erp.orchestrator


def get_partner_search(
    erp: Annotated[ErpServices, Depends(get_erp_services)],
) -> PartnerSearch:
    return erp.partner_search


def get_token_manager(
    erp: Annotated[ErpServices, Depends(get_erp_services)],
) -> TokenManager:
    return erp.token_manager


user_dep = Annotated[models.User, Depends(get_current_user)]
admin_dep = Annotated[models.User, Depends(validate_admin_role)]
orchestrator_dep = Annotated[AggregationOrchestrator, Depends(get_orchestrator)]
partner_search_dep = Annotated[PartnerSearch, Depends(get_partner_search)]
token_manager_dep = Annotated[TokenManager, Depends(get_token_manager)]


def erp_http_exception(error: Exception) -> HTTPException:
    """Translate an ERP failure into the HTTP error the dashboard sees."""
    if isinstance(error, AuthError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"ERP authentication failed: {error}",
        )
    if isinstance(error, (TransientError, httpx.HTTPError)):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"ERP unreachable: {error}",
        )
    if isinstance(error, ErpError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"ERP request failed: {error}",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Unexpected error while querying the ERP",
    )
