"""
Phone number endpoints. Twilio credentials are accepted on create and never
returned.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from voicematrix.services.phone_numbers import PhoneNumberService
from voicematrix.types.phone_numbers import PhoneNumberCreateRequest, PhoneNumberUpdateRequest

from ..auth import require_account
from ..dependencies import get_phone_number_service
from ..envelope import success

router = APIRouter(prefix="/phone-numbers", tags=["phone-numbers"])


@router.get("")
async def list_phone_numbers(
    account_id: str = Depends(require_account),
    service: PhoneNumberService = Depends(get_phone_number_service),
) -> Dict[str, Any]:
    return success(await service.list_phone_numbers(account_id))


@router.get("/{phone_id}")
async def get_phone_number(
    phone_id: str,
    account_id: str = Depends(require_account),
    service: PhoneNumberService = Depends(get_phone_number_service),
) -> Dict[str, Any]:
    phone = await service.get_phone_number(account_id, phone_id)
    return success(phone.to_public())


@router.post("")
async def create_phone_number(
    body: PhoneNumberCreateRequest,
    account_id: str = Depends(require_account),
    service: PhoneNumberService = Depends(get_phone_number_service),
) -> Dict[str, Any]:
    phone = await service.create_phone_number(account_id, body)
    return success(phone.to_public())


@router.patch("/{phone_id}")
async def update_phone_number(
    phone_id: str,
    body: PhoneNumberUpdateRequest,
    account_id: str = Depends(require_account),
    service: PhoneNumberService = Depends(get_phone_number_service),
) -> Dict[str, Any]:
    phone = await service.update_phone_number(account_id, phone_id, body)
    return success(phone.to_public())


@router.delete("/{phone_id}")
async def delete_phone_number(
    phone_id: str,
    account_id: str = Depends(require_account),
    service: PhoneNumberService = Depends(get_phone_number_service),
) -> Dict[str, Any]:
    await service.delete_phone_number(account_id, phone_id)
    return {"success": True, "message": "Phone number deleted successfully"}
