"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses

Admin responses keep the camelCase keys the admin frontend reads
(loginTime, totalMessages, ...); rows copied from the database keep
their column names.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ContactRequest(BaseModel):
    """
    Contact form submission.

    Validates:
    - name: non-empty, max 100 characters
    - email: basic address shape
    - message: non-empty, max 5000 characters
    """
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    message: str = Field(..., min_length=1, max_length=5000)

    @field_validator("name", "message")
    @classmethod
    def strip_required_text(cls, v: str, info) -> str:
        v = v.strip()
        if not v:
            raise ValueError(f"{info.field_name} must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_RE.match(v):
            raise ValueError("email must be a valid email address")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"name": "Ada", "email": "ada@example.com", "message": "hi"}
            ]
        }
    }


class LoginRequest(BaseModel):
    """
    Admin login body. Fields are optional here so that missing values are
    answered by the session authority with a 400 and a readable message.
    """
    username: Optional[str] = None
    password: Optional[str] = None


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    success: bool = False
    message: str = Field(..., description="Error description")


class ContactResponse(SuccessResponse):
    id: int


class LoginResponse(CamelModel):
    success: bool = True
    message: str
    user: str
    login_time: str


class SessionCheckResponse(CamelModel):
    success: bool = True
    authenticated: bool
    user: Optional[str] = None
    login_time: Optional[str] = None


class RecentMessage(BaseModel):
    id: int
    name: str
    email: str
    preview: str
    message: str
    created_at: str
    status: str
    ip_address: Optional[str] = None


class DownloadsByDate(BaseModel):
    date: str
    count: int = Field(..., ge=0)


class SiteStatsResponse(BaseModel):
    page_views: int = Field(..., ge=0)
    unique_visitors: int = Field(..., ge=0)
    total_contacts: int = Field(..., ge=0)
    total_downloads: int = Field(..., ge=0)
    last_updated: Optional[str] = None


class AdminStats(CamelModel):
    """Dashboard aggregate for GET /api/admin/stats."""
    total_messages: int = Field(..., ge=0)
    unread_messages: int = Field(..., ge=0)
    total_downloads: int = Field(..., ge=0)
    recent_messages: list[RecentMessage] = Field(default_factory=list)
    downloads_by_date: list[DownloadsByDate] = Field(default_factory=list)
    site_stats: SiteStatsResponse
    last_updated: str


class AdminStatsResponse(BaseModel):
    success: bool = True
    data: AdminStats


class HealthResponse(BaseModel):
    """Response model for liveness/readiness probes."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


class DatabaseHealthResponse(BaseModel):
    status: str
    timestamp: str
    database_time: Optional[str] = None
    table_count: Optional[int] = None
    error: Optional[str] = None
