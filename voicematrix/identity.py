"""
Identity providers that turn a bearer token into an account id.

Production: Supabase Auth (`auth.get_user`), called in a worker thread since
supabase-py's client is synchronous.
Dev/test: InMemoryIdentityProvider with a static token table.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from supabase import Client, create_client

from voicematrix.config import DatabaseSettings

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    @abstractmethod
    async def resolve_token(self, token: str) -> Optional[str]:
        """Return the account id for a valid token, None otherwise."""


class SupabaseIdentityProvider(IdentityProvider):
    def __init__(self, client: Client):
        self._client = client

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "SupabaseIdentityProvider":
        key = settings.supabase_service_role_key or settings.supabase_anon_key
        client = create_client(settings.supabase_url, key.get_secret_value())
        logger.info("Supabase identity provider initialized")
        return cls(client)

    async def resolve_token(self, token: str) -> Optional[str]:
        try:
            response = await asyncio.to_thread(lambda: self._client.auth.get_user(token))
        except Exception as e:
            # supabase-py raises AuthApiError (and friends) for bad or expired JWTs
            logger.info("Token rejected by Supabase: %s", type(e).__name__)
            return None

        user = getattr(response, "user", None)
        if user is None:
            return None
        return str(user.id)


class InMemoryIdentityProvider(IdentityProvider):
    """Static token -> account id table for local development and tests."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self._tokens: Dict[str, str] = dict(tokens or {})

    def register(self, token: str, account_id: str) -> None:
        self._tokens[token] = account_id

    async def resolve_token(self, token: str) -> Optional[str]:
        return self._tokens.get(token)
