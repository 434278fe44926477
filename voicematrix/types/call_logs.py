"""Call log models and the Vapi end-reason to status mapping."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CallStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NO_ANSWER = "no-answer"
    BUSY = "busy"
    FAILED = "failed"


ENDED_REASON_STATUS: Dict[str, CallStatus] = {
    "customer-ended-call": CallStatus.COMPLETED,
    "assistant-ended-call": CallStatus.COMPLETED,
    "max-duration-reached": CallStatus.COMPLETED,
    "silence-timeout": CallStatus.COMPLETED,
    "customer-did-not-answer": CallStatus.NO_ANSWER,
    "customer-busy": CallStatus.BUSY,
    "system-error": CallStatus.FAILED,
}

STATUS_DISPLAY: Dict[str, str] = {
    CallStatus.IN_PROGRESS.value: "In Progress",
    CallStatus.COMPLETED.value: "Completed",
    CallStatus.NO_ANSWER.value: "No Answer",
    CallStatus.BUSY.value: "Busy",
    CallStatus.FAILED.value: "Failed",
}


def map_ended_reason(ended_reason: Optional[str]) -> CallStatus:
    """Unknown or missing end reasons count as failed."""
    if not ended_reason:
        return CallStatus.FAILED
    return ENDED_REASON_STATUS.get(ended_reason, CallStatus.FAILED)


class CallLog(BaseModel):
    id: str
    account_id: str
    assistant_id: Optional[str] = None
    phone_number_id: Optional[str] = None
    vapi_call_id: Optional[str] = None
    caller_number: Optional[str] = None
    status: CallStatus = CallStatus.IN_PROGRESS
    duration_seconds: int = 0
    transcript: Optional[str] = None
    summary: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    success_evaluation: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class CallLogPage(BaseModel):
    items: List[CallLog] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int


class CallUsageSummary(BaseModel):
    total_call_seconds: int = 0
    total_call_minutes: float = 0
    call_count: int = 0
    latest_call: Optional[datetime] = None
    formatted_duration: str = "0:00"
    remaining_minutes: Optional[float] = None
    percent_used: float = 0
