"""
Service wiring for the Voice Matrix API.

build_container() constructs every client and service once at startup; the
result lives on app.state.container and route handlers reach it through the
get_* dependencies below. Tests build a container with in-memory backends
and a fake voice provider.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from voicematrix.accounts import SessionGate
from voicematrix.config import Settings
from voicematrix.identity import IdentityProvider, InMemoryIdentityProvider, SupabaseIdentityProvider
from voicematrix.services.accounts import DemoAccountService
from voicematrix.services.analytics import AnalyticsService
from voicematrix.services.assistants import AssistantService
from voicematrix.services.call_logs import CallLogService
from voicematrix.services.phone_numbers import PhoneNumberService
from voicematrix.storage import Storage, build_storage
from voicematrix.usage import (
    AutoDeletionOrchestrator,
    LimitEvaluator,
    QuotaStore,
    UsageLedger,
    UsageLimitsService,
)
from voicematrix.utils.crypto import CredentialEncryptor
from voicematrix.vapi import VapiClient, VoiceProvider

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    storage: Storage
    voice_provider: VoiceProvider
    identity: IdentityProvider
    session_gate: SessionGate
    usage: UsageLimitsService
    assistants: AssistantService
    phone_numbers: PhoneNumberService
    call_logs: CallLogService
    analytics: AnalyticsService
    demo_accounts: DemoAccountService

    async def close(self) -> None:
        await self.voice_provider.close()
        await self.storage.close()


def build_identity_provider(settings: Settings) -> IdentityProvider:
    if settings.is_supabase_configured:
        return SupabaseIdentityProvider.from_settings(settings.database)
    logger.warning("Supabase not configured, using in-memory identity provider")
    return InMemoryIdentityProvider()


async def build_container(
    settings: Settings,
    storage: Optional[Storage] = None,
    voice_provider: Optional[VoiceProvider] = None,
    identity: Optional[IdentityProvider] = None,
) -> ServiceContainer:
    storage = storage or await build_storage(settings)
    voice_provider = voice_provider or VapiClient.from_settings(settings.vapi)
    identity = identity or build_identity_provider(settings)

    ledger = UsageLedger(storage)
    quota_store = QuotaStore(storage, ledger)
    usage = UsageLimitsService(
        quota_store=quota_store,
        ledger=ledger,
        evaluator=LimitEvaluator(storage, quota_store),
        orchestrator=AutoDeletionOrchestrator(storage, voice_provider, quota_store, ledger),
    )
    demo_accounts = DemoAccountService(
        storage, voice_provider, quota_store,
        demo_duration_days=settings.demo.demo_duration_days,
    )

    container = ServiceContainer(
        settings=settings,
        storage=storage,
        voice_provider=voice_provider,
        identity=identity,
        session_gate=SessionGate(identity, storage),
        usage=usage,
        assistants=AssistantService(storage, voice_provider, usage, settings.vapi),
        phone_numbers=PhoneNumberService(
            storage, voice_provider, CredentialEncryptor.from_settings(settings.security)
        ),
        call_logs=CallLogService(storage, usage, demo_accounts),
        analytics=AnalyticsService(
            storage, usage, cache_ttl_seconds=settings.demo.analytics_cache_ttl_seconds
        ),
        demo_accounts=demo_accounts,
    )
    logger.info("Service container built (storage=%s)", type(storage).__name__)
    return container


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_usage_service(request: Request) -> UsageLimitsService:
    return get_container(request).usage


def get_assistant_service(request: Request) -> AssistantService:
    return get_container(request).assistants


def get_phone_number_service(request: Request) -> PhoneNumberService:
    return get_container(request).phone_numbers


def get_call_log_service(request: Request) -> CallLogService:
    return get_container(request).call_logs


def get_analytics_service(request: Request) -> AnalyticsService:
    return get_container(request).analytics


def get_demo_account_service(request: Request) -> DemoAccountService:
    return get_container(request).demo_accounts
