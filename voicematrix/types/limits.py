"""
Pydantic models for plan limits, quota records and the usage ledger.

This module defines the data models for:
- Plan types and their assistant / call-time limits
- The per-account quota record
- Usage ledger entries and their action and trigger enums
- Read models returned by the limit evaluator and the auto-deletion flow
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

UNLIMITED = -1


class PlanType(str, Enum):
    """Available plans. Enterprise limits are unlimited."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"


class PlanConfig(BaseModel):
    """Limits attached to a plan."""

    plan_type: PlanType
    name: str
    max_assistants: int = Field(
        ...,
        description="Maximum concurrent assistants (-1 for unlimited)"
    )
    max_call_time_seconds: int = Field(
        ...,
        description="Maximum cumulative call seconds (-1 for unlimited)"
    )


PLAN_CONFIGS: Dict[PlanType, PlanConfig] = {
    PlanType.FREE: PlanConfig(
        plan_type=PlanType.FREE,
        name="Free",
        max_assistants=2,
        max_call_time_seconds=600,
    ),
    PlanType.PRO: PlanConfig(
        plan_type=PlanType.PRO,
        name="Pro",
        max_assistants=10,
        max_call_time_seconds=3600,
    ),
    PlanType.BUSINESS: PlanConfig(
        plan_type=PlanType.BUSINESS,
        name="Business",
        max_assistants=50,
        max_call_time_seconds=18000,
    ),
    PlanType.ENTERPRISE: PlanConfig(
        plan_type=PlanType.ENTERPRISE,
        name="Enterprise",
        max_assistants=UNLIMITED,
        max_call_time_seconds=UNLIMITED,
    ),
}


def get_plan_config(plan_type: PlanType) -> PlanConfig:
    """Get the limits for a plan, falling back to the free plan."""
    return PLAN_CONFIGS.get(plan_type, PLAN_CONFIGS[PlanType.FREE])


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


class QuotaRecord(BaseModel):
    """
    Usage counters and limits for one account.

    Only the quota store mutates these counters, and always through an
    atomic storage update.
    """

    account_id: str
    plan_type: PlanType = PlanType.FREE
    max_assistants: int
    max_call_time_seconds: int
    current_assistants: int = Field(default=0, ge=0)
    used_call_time_seconds: int = Field(default=0, ge=0)
    last_deletion_at: Optional[datetime] = None
    deletion_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def for_plan(cls, account_id: str, plan_type: PlanType) -> "QuotaRecord":
        config = get_plan_config(plan_type)
        return cls(
            account_id=account_id,
            plan_type=config.plan_type,
            max_assistants=config.max_assistants,
            max_call_time_seconds=config.max_call_time_seconds,
        )


class UsageAction(str, Enum):
    """Kinds of entries written to the usage ledger."""
    ASSISTANT_CREATED = "assistant_created"
    ASSISTANT_DELETED = "assistant_deleted"
    CALL_COMPLETED = "call_completed"
    LIMIT_EXCEEDED = "limit_exceeded"
    AUTO_DELETION_TRIGGERED = "auto_deletion_triggered"
    PHONE_NUMBER_DELETED = "phone_number_deleted"
    BILLING_CYCLE_RESET = "billing_cycle_reset"


class TriggerReason(str, Enum):
    USER_ACTION = "user_action"
    LIMIT_EXCEEDED = "limit_exceeded"
    AUTO_RESET = "auto_reset"


class UsageLogEntry(BaseModel):
    """One append-only ledger entry."""

    id: Optional[str] = None
    account_id: str
    action_type: UsageAction
    resource_id: Optional[str] = None
    assistant_count_change: int = 0
    call_time_change_seconds: int = 0
    trigger_reason: Optional[TriggerReason] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class CallTimeUpdate(BaseModel):
    """Result of adding call seconds to an account."""

    old_total: int
    new_total: int
    limit: int
    limit_exceeded: bool

    @property
    def overage(self) -> int:
        if is_unlimited(self.limit):
            return 0
        return max(0, self.new_total - self.limit)


class AssistantCapacity(BaseModel):
    """Whether the account may create another assistant."""

    allowed: bool
    current: int
    max: int
    remaining: int


class UsagePercentage(BaseModel):
    assistants: float = 0
    call_time: float = 0


class UserLimits(BaseModel):
    """Quota record plus derived remaining values and percentages."""

    account_id: str
    plan_type: PlanType
    max_assistants: int
    max_call_time_seconds: int
    current_assistants: int
    used_call_time_seconds: int
    last_deletion_at: Optional[datetime] = None
    deletion_count: int = 0
    remaining_assistants: int
    remaining_call_time_seconds: int
    usage_percentage: UsagePercentage


class PhoneNumberDeletion(BaseModel):
    """Outcome of deleting one phone number during auto-deletion."""

    id: str
    phone_number: str
    success: bool
    error: Optional[str] = None


class DeletedAssistant(BaseModel):
    id: str
    name: str
    vapi_assistant_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AutoDeletionResult(BaseModel):
    """
    Outcome of one auto-deletion run.

    call_time_reset is always False: deleting an assistant never gives
    call time back.
    """

    success: bool
    deleted_assistant: Optional[DeletedAssistant] = None
    deleted_phone_numbers: List[PhoneNumberDeletion] = Field(default_factory=list)
    call_time_reset: bool = False
    error: Optional[str] = None


class CallTimeResult(BaseModel):
    """What the usage facade reports after recording a completed call."""

    update: CallTimeUpdate
    auto_deletion: Optional[AutoDeletionResult] = None
    account_purged: bool = False
