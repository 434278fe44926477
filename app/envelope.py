"""
Response envelopes.

Successful responses are {"success": true, "data": ...}. Errors normally go
through app.error_handlers; the one exception is the assistant limit, which
is reported to the client as an empty success.
"""

from typing import Any, Awaitable, Dict

from pydantic import BaseModel

from voicematrix.exceptions import LimitReachedError


def success(data: Any = None) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
    return {"success": True, "data": data}


async def to_client_envelope(operation: Awaitable[Any]) -> Dict[str, Any]:
    """
    Await a service call and wrap its result.

    LimitReachedError becomes {"success": true, "data": null}; this is the
    only place where a limit is hidden from the client. Every other error
    propagates to the exception handlers.
    """
    try:
        result = await operation
    except LimitReachedError:
        return success(None)
    return success(result)
