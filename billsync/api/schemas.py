"""
API request and response schemas

Domain models (Bill, BillSummary, Provider, User, LinkedAccountResponse)
are returned as they are; only request bodies and envelopes live here.
"""

from typing import Optional

from pydantic import BaseModel, Field

from billsync.models.bill import AuthType


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


class MessageResponse(BaseModel):
    message: str


class LinkAccountRequest(BaseModel):
    provider_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    credentials: str = Field(default="", repr=False)


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=200)


class CreateProviderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    api_endpoint: str = Field(..., min_length=1)
    auth_type: AuthType = AuthType.NONE


class UpdateUserRequest(BaseModel):
    email: Optional[str] = Field(default=None, min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=200)


class UpdateProviderRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    api_endpoint: Optional[str] = Field(default=None, min_length=1)
    auth_type: Optional[AuthType] = None
