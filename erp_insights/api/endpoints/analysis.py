import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import ValidationError

from erp_insights.core import schemas
from erp_insights.core.config import settings
from erp_insights.api.dependencies import (
    admin_dep,
    erp_http_exception,
    orchestrator_dep,
    token_manager_dep,
    user_dep,
)

router = APIRouter(prefix="/analysis", tags=["Analysis"])


def build_filter(date_start: Optional[str], date_end: Optional[str]) -> schemas.AnalysisFilter:
    """Fill missing dates with the default window (last N days up to today)."""
    today = date.today()
    if date_end is None:
        date_end = today.isoformat()
    if date_start is None:
        date_start = (today - timedelta(days=settings.ANALYSIS_DEFAULT_DAYS)).isoformat()

    try:
        return schemas.AnalysisFilter(date_start=date_start, date_end=date_end)
    except ValidationError as error:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[e["msg"] for e in error.errors()],
        )


@router.get("", response_model=schemas.AnalysisSnapshot)
async def get_analysis(
    current_user: user_dep,
    orchestrator: orchestrator_dep,
    date_start: Optional[str] = None,
    date_end: Optional[str] = None,
):
    """
    Return the ERP analysis snapshot for the current user.

    Dates are ISO (YYYY-MM-DD); both default to the last 30 days.
    Admins see every user's leads, other users only their own.
    """
    analysis_filter = build_filter(date_start, date_end)

    try:
        return await orchestrator.fetch(
            analysis_filter,
            user_id=current_user.id,
            is_admin=current_user.role == schemas.UserRole.ADMIN.value,
        )
    except Exception as error:
        logging.error(f"Analysis failed for user {current_user.id}: {error}")
        raise erp_http_exception(error)


@router.get("/erp-status", response_model=schemas.ErpStatusResponse)
async def erp_status(admin: admin_dep, token_manager: token_manager_dep):
    """Admin-only view of the ERP session."""
    return schemas.ErpStatusResponse(
        token_cached=token_manager.has_token,
        login_requests=token_manager.login_requests,
        login_url=settings.ERP_LOGIN_URL,
        query_url=settings.ERP_QUERY_URL,
    )


@router.post("/erp-session/reset")
async def reset_erp_session(admin: admin_dep, token_manager: token_manager_dep):
    """Admin-only: drop the cached ERP token so the next query logs in again."""
    token_manager.invalidate()
    return {"Result": "ERP session reset"}
