"""
Credential/session gate.

Resolves a bearer token to an account id and rejects accounts whose demo
period has ended. Both failures raise the same AuthenticationError so a
client cannot tell an expired demo from a bad credential.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from voicematrix.exceptions import AuthenticationError
from voicematrix.identity import IdentityProvider
from voicematrix.storage.base import Storage
from voicematrix.types.accounts import Account
from voicematrix.utils.logging import mask_account_id

logger = logging.getLogger(__name__)

UNAUTHENTICATED_MESSAGE = "Authentication required"


def unauthenticated() -> AuthenticationError:
    return AuthenticationError(UNAUTHENTICATED_MESSAGE)


async def ensure_account_active(
    storage: Storage,
    account_id: str,
    now: Optional[datetime] = None,
) -> Optional[Account]:
    """
    Raise AuthenticationError if the account is an expired demo.

    Accounts without a profile row are treated as active; returns the
    profile when one exists.
    """
    account = await storage.get_account(account_id)
    if account is not None and account.is_demo_expired(now or datetime.now(timezone.utc)):
        logger.info("Rejected expired demo account %s", mask_account_id(account_id))
        raise unauthenticated()
    return account


class SessionGate:
    """Turns a bearer token into a live account id."""

    def __init__(self, identity: IdentityProvider, storage: Storage):
        self._identity = identity
        self._storage = storage

    async def authenticate(self, token: Optional[str]) -> str:
        if not token:
            raise unauthenticated()

        account_id = await self._identity.resolve_token(token)
        if not account_id:
            raise unauthenticated()

        await ensure_account_active(self._storage, account_id)
        return account_id
