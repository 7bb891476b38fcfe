from datetime import date, datetime
from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


# =========================
# USER
# =========================
class UserBase(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.USER
    seller_code: Optional[int] = Field(default=None, ge=1)


class CreateUser(UserBase):
    password: str = Field(min_length=8)
    model_config = ConfigDict(from_attributes=True)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(UserBase):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =========================
# ANALYSIS
# =========================
class AnalysisFilter(BaseModel):
    """Date range of one analysis, ISO YYYY-MM-DD on both ends."""

    date_start: str
    date_end: str

    model_config = ConfigDict(frozen=True)

    @field_validator("date_start", "date_end")
    @classmethod
    def validate_iso_date(cls, value: str) -> str:
        try:
            parsed = date.fromisoformat(value)
        except ValueError:
            raise ValueError("dates must be ISO formatted (YYYY-MM-DD)")
        # Normalize so equal dates always give equal cache keys
        return parsed.isoformat()

    @model_validator(mode="after")
    def validate_range(self):
        if self.date_start > self.date_end:
            raise ValueError("date_start must not be after date_end")
        return self


class AnalysisMetrics(BaseModel):
    total_leads: int = 0
    total_lead_products: int = 0
    total_funnels: int = 0
    total_funnel_stages: int = 0
    total_activities: int = 0
    total_orders: int = 0
    total_products: int = 0
    total_clients: int = 0
    total_order_value: float = 0.0

    model_config = ConfigDict(frozen=True)


class AnalysisSnapshot(BaseModel):
    """
    Everything one dashboard analysis needs, as fetched from the ERP.

    Records are plain field-name -> value dicts, exactly as mapped from the
    ERP's column-indexed payload.
    """

    leads: List[Dict[str, Any]] = []
    lead_products: List[Dict[str, Any]] = []
    funnels: List[Dict[str, Any]] = []
    funnel_stages: List[Dict[str, Any]] = []
    activities: List[Dict[str, Any]] = []
    orders: List[Dict[str, Any]] = []
    products: List[Dict[str, Any]] = []
    clients: List[Dict[str, Any]] = []
    # Receivables are no longer fetched, the key stays for dashboard clients
    financial: List[Dict[str, Any]] = []
    filter: AnalysisFilter
    timestamp: str
    metrics: AnalysisMetrics
    failed_datasets: List[str] = []

    model_config = ConfigDict(frozen=True)


# =========================
# CLIENT SEARCH
# =========================
class ClientSearchResult(BaseModel):
    clients: List[Dict[str, Any]] = []
    total: int = 0


# =========================
# ERP STATUS
# =========================
class ErpStatusResponse(BaseModel):
    token_cached: bool
    login_requests: int
    login_url: str
    query_url: str
