"""
Core Data Models for billsync

These models define the schemas for everything flowing between the
fetch orchestration core and its collaborators (repository, cache,
provider adapters, HTTP layer).

DESIGN DECISION: We use Pydantic v2 models for all domain records.
The same model is used for cache serialization, repository rows and
API responses, except where a field must never leave the service
(linked account credentials).
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    computed_field,
)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new opaque identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BillStatus(str, Enum):
    """Payment status of a bill as reported by the provider."""
    PAID = "paid"
    UNPAID = "unpaid"
    OVERDUE = "overdue"


# Statuses that count towards the amount a user still owes
DUE_STATUSES = frozenset({BillStatus.UNPAID, BillStatus.OVERDUE})


class AccountStatus(str, Enum):
    """Lifecycle status of a linked account."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class AuthType(str, Enum):
    """How a provider authenticates requests for an account."""
    NONE = "none"
    API_KEY = "api_key"
    BASIC = "basic"
    OAUTH2 = "oauth2"


# =============================================================================
# CATALOG & OWNERSHIP MODELS
# =============================================================================

class User(BaseModel):
    """A registered user who owns linked accounts."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    email: str = Field(..., min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)


class Provider(BaseModel):
    """
    Catalog entry for an external billing source.

    Read-mostly reference data. `name` is unique across the catalog.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    api_endpoint: str = Field(..., min_length=1)
    auth_type: AuthType = AuthType.NONE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LinkedAccount(BaseModel):
    """
    A user's credential-backed connection to one provider.

    CRITICAL: `credentials` holds the ENCRYPTED credential blob.
    It is persisted, but never returned from the API
    (see LinkedAccountResponse).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    account_id: str = Field(
        ...,
        min_length=1,
        description="Account identifier on the provider side"
    )
    credentials: str = Field(
        default="",
        repr=False,
        description="Encrypted provider credentials"
    )
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LinkedAccountResponse(BaseModel):
    """Public view of a linked account. Has no credentials field."""

    id: str
    user_id: str
    provider_id: str
    account_id: str
    status: AccountStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: LinkedAccount) -> "LinkedAccountResponse":
        return cls(**account.model_dump(exclude={"credentials"}))


# =============================================================================
# BILLS
# =============================================================================

class Bill(BaseModel):
    """
    A single billing record belonging to exactly one linked account.

    `id` may be empty when a provider does not supply one; the refresh
    path assigns a new id before persisting.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    linked_account_id: str = ""
    provider_id: str = ""
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount billed"
    )
    due_date: date
    bill_date: date = Field(default_factory=lambda: utcnow().date())
    status: BillStatus = BillStatus.UNPAID
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_due(self) -> bool:
        """Does this bill count towards the total due?"""
        return self.status in DUE_STATUSES


class BillSummary(BaseModel):
    """
    Transient aggregate of a user's bills. Never persisted.

    Serializes to the API shape {bills, total_due, bill_count}.
    """

    bills: list[Bill] = Field(default_factory=list)
    total_due: Annotated[
        Decimal,
        PlainSerializer(float, return_type=float, when_used="json"),
    ] = Decimal("0")

    @computed_field
    @property
    def bill_count(self) -> int:
        return len(self.bills)

    @classmethod
    def from_bills(cls, bills: list[Bill]) -> "BillSummary":
        """
        Aggregate a bill list.

        Only sums and counts are used, so the result does not depend
        on the order in which concurrent fetches completed.
        """
        total = sum((bill.amount for bill in bills if bill.is_due), Decimal("0"))
        return cls(bills=list(bills), total_due=total)

    @classmethod
    def empty(cls) -> "BillSummary":
        return cls(bills=[], total_due=Decimal("0"))


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'wrong_account', 'inconsistent')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    bill_id: Optional[str] = Field(
        default=None,
        description="Bill the issue was found on, if it has an id"
    )


class BillValidationResult(BaseModel):
    """
    Result of validating one account's freshly fetched bills.

    `bills` holds the normalized bills (ownership fields stamped).
    """

    linked_account_id: str
    bills: list[Bill] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    validated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.has_errors
