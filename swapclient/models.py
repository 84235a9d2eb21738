"""
ROSCA ("Sol") resources and request/response DTOs.

Field names are snake_case in Python and camelCase on the wire.
Unknown server fields are kept so local copies round-trip unchanged.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Frequency = Literal["daily", "weekly", "biweekly", "monthly"]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self, exclude_none: bool = False) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=exclude_none)


class RoscaPool(ApiModel):
    """Pool information for listing."""

    id: str
    name: str
    description: str | None = None
    contribution_amount: float
    currency_code: str
    currency_symbol: str = ""
    frequency: Frequency
    payout_multiplier: float = 1.0
    expected_payout: float = 0.0
    member_count: int = 0
    available_slots: int | None = None
    max_members: int | None = None
    status: str = "active"
    start_date: str | None = None
    end_date: str | None = None
    registration_deadline: str | None = None
    duration_periods: int | None = None
    cohort_number: int = 1


class RoscaPoolDetails(RoscaPool):
    created_at: str | None = None
    visibility: Literal["public", "private", "invite_only"] = "public"


class RoscaEnrollment(ApiModel):
    """A user's enrollment in a pool."""

    id: str
    pool_id: str
    pool_name: str
    contribution_amount: float
    currency_code: str
    currency_symbol: str = ""
    frequency: Frequency
    queue_position: int
    total_members: int
    total_contributed: float = 0.0
    expected_payout: float = 0.0
    contributions_count: int = 0
    prepaid_periods: int = 0
    next_payment_due: str | None = None
    days_until_next_payment: int = 0
    status: Literal["active", "paused", "completed", "defaulted"] = "active"
    is_your_turn: bool = False
    payout_received: bool = False
    pending_late_fees: float = 0.0
    joined_at: str = ""


class RoscaEnrollmentDetails(RoscaEnrollment):
    last_payment_at: str | None = None
    payout_date: str | None = None
    payout_amount: float | None = None
    payout_multiplier: float = 1.0
    grace_period_days: int = 0


class RoscaPayment(ApiModel):
    id: str
    enrollment_id: str
    amount: float
    currency_code: str
    periods_covered: int = 1
    payment_method: str = "wallet"
    due_date: str = ""
    paid_at: str | None = None
    days_late: int = 0
    late_fee_amount: float = 0.0
    status: Literal["pending", "paid", "failed", "refunded"] = "pending"


class RoscaFriend(ApiModel):
    entity_id: str
    display_name: str
    initials: str = ""
    avatar_url: str | None = None
    queue_position: int
    total_members: int
    has_paid: bool = False


class JoinPoolDto(ApiModel):
    pool_id: str
    referred_by_entity_id: str | None = None


class MakePaymentDto(ApiModel):
    enrollment_id: str
    amount: float
    payment_method: Literal["wallet", "moncash", "agent_cash"] = "wallet"
    periods: int | None = None
    agent_entity_id: str | None = None
    source_wallet_id: str | None = None


class MakePaymentResponse(ApiModel):
    payment_id: str
    enrollment_id: str
    amount_paid: float
    late_fee_charged: float = 0.0
    periods_covered: int = 1
    new_total_contributed: float
    new_contributions_count: int
    next_payment_due: str | None = None
    transaction_id: str | None = None
    status: Literal["paid", "pending", "failed"] = "paid"
    message: str = ""
