"""
Bearer-token authentication for the Voice Matrix API.

require_account is the dependency every account-scoped route uses. Missing
tokens, rejected tokens and expired demo accounts all produce the same 401
response.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from voicematrix.utils.logging import set_request_context

from .dependencies import get_container

logger = logging.getLogger(__name__)

BEARER_SCHEME = HTTPBearer(auto_error=False)


async def require_account(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(BEARER_SCHEME),
) -> str:
    """
    Resolve the bearer token to a live account id.

    Raises:
        AuthenticationError: token missing, invalid, or the demo has expired.
    """
    token = credentials.credentials if credentials else None
    account_id = await get_container(request).session_gate.authenticate(token)

    request.state.account_id = account_id
    set_request_context(account_id=account_id)
    return account_id
