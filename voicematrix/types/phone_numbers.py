"""Models for Twilio phone numbers registered with Vapi."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PhoneNumberCreateRequest(BaseModel):
    phone_number: Optional[str] = None
    friendly_name: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    assigned_assistant_id: Optional[str] = None
    notes: Optional[str] = None


class PhoneNumberUpdateRequest(BaseModel):
    friendly_name: Optional[str] = None
    assigned_assistant_id: Optional[str] = None
    notes: Optional[str] = None


class PhoneNumber(BaseModel):
    """
    A phone number row.

    twilio_auth_token holds the encrypted token and must never be returned
    to a client; use to_public() for responses.
    """

    id: str
    account_id: str
    phone_number: str
    friendly_name: str
    provider: str = "twilio"
    vapi_phone_id: Optional[str] = None
    vapi_credential_id: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = Field(default=None, repr=False)
    assigned_assistant_id: Optional[str] = None
    notes: Optional[str] = None
    status: str = "active"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_public(self) -> dict:
        return self.model_dump(
            mode="json",
            exclude={"twilio_auth_token", "twilio_account_sid", "vapi_credential_id"},
        )
