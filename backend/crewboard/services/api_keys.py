"""Bring-your-own-key credential storage, validation, and resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import anthropic
import httpx
import openai
from sqlmodel import col

from crewboard.core.config import settings
from crewboard.core.crypto import EncryptionError, decrypt_string, encrypt_string
from crewboard.core.logging import get_logger
from crewboard.core.time import utcnow
from crewboard.models.api_keys import ApiKey, ApiKeyStatus, ApiProvider

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

SUPPORTED_API_PROVIDERS: tuple[ApiProvider, ...] = (
    ApiProvider.ANTHROPIC,
    ApiProvider.OPENAI,
    ApiProvider.GOOGLE,
)
PROVIDER_LABELS: dict[ApiProvider, str] = {
    ApiProvider.OPENAI: "OpenAI",
    ApiProvider.ANTHROPIC: "Claude (Anthropic)",
    ApiProvider.GOOGLE: "Google (Gemini)",
}
_PROVIDER_ALIASES: dict[str, ApiProvider] = {
    "OPENAI": ApiProvider.OPENAI,
    "ANTHROPIC": ApiProvider.ANTHROPIC,
    "CLAUDE": ApiProvider.ANTHROPIC,
    "GOOGLE": ApiProvider.GOOGLE,
    "GEMINI": ApiProvider.GOOGLE,
}
GOOGLE_MODELS_URL = "https://generativelanguage.googleapis.com/v1/models"
_VALIDATION_TIMEOUT_SECONDS = 15.0

KeySource = Literal["user", "platform", "missing"]


class ApiKeyNotFoundError(LookupError):
    def __init__(self) -> None:
        super().__init__("No API key found to validate")


@dataclass(frozen=True)
class ResolvedApiKey:
    """Credential picked for a provider call and where it came from."""

    provider: ApiProvider
    source: KeySource
    api_key: str | None = None

    @property
    def is_missing(self) -> bool:
        return self.source == "missing"


@dataclass(frozen=True)
class KeyValidation:
    status: ApiKeyStatus
    error_message: str | None = None


@dataclass(frozen=True)
class ApiKeySummary:
    provider: str
    status: str
    last4: str | None
    last_checked_at: datetime | None
    error_message: str | None

    @classmethod
    def from_record(cls, record: ApiKey) -> ApiKeySummary:
        return cls(
            provider=record.provider,
            status=record.status,
            last4=record.last4,
            last_checked_at=record.last_checked_at,
            error_message=record.error_message,
        )


@dataclass(frozen=True)
class PlatformKeyInfo:
    available: bool
    last4: str | None


@dataclass(frozen=True)
class ApiKeyOverview:
    provider: ApiProvider
    label: str
    user_key: ApiKeySummary | None
    platform_key: PlatformKeyInfo
    in_use: KeySource


def normalize_provider(provider: str | ApiProvider) -> ApiProvider | None:
    """Accept provider names and common aliases (CLAUDE, GEMINI)."""
    value = provider.value if isinstance(provider, ApiProvider) else str(provider)
    return _PROVIDER_ALIASES.get(value.strip().upper())


def get_platform_api_key(provider: ApiProvider) -> str | None:
    keys = {
        ApiProvider.OPENAI: settings.openai_api_key,
        ApiProvider.ANTHROPIC: settings.anthropic_api_key,
        ApiProvider.GOOGLE: settings.google_ai_api_key,
    }
    return keys[provider].strip() or None


async def _validate_openai_key(api_key: str) -> KeyValidation:
    try:
        client = openai.AsyncOpenAI(api_key=api_key, timeout=_VALIDATION_TIMEOUT_SECONDS)
        await client.models.list()
    except openai.APIError as exc:
        return KeyValidation(ApiKeyStatus.INVALID, exc.message or "Unable to validate OpenAI key")
    return KeyValidation(ApiKeyStatus.VALID)


async def _validate_anthropic_key(api_key: str) -> KeyValidation:
    try:
        client = anthropic.AsyncAnthropic(api_key=api_key, timeout=_VALIDATION_TIMEOUT_SECONDS)
        await client.models.list()
    except anthropic.APIError as exc:
        return KeyValidation(
            ApiKeyStatus.INVALID,
            exc.message or "Unable to validate Anthropic key",
        )
    return KeyValidation(ApiKeyStatus.VALID)


async def _validate_google_key(api_key: str) -> KeyValidation:
    try:
        async with httpx.AsyncClient(timeout=_VALIDATION_TIMEOUT_SECONDS) as client:
            response = await client.get(GOOGLE_MODELS_URL, params={"key": api_key})
    except httpx.HTTPError as exc:
        return KeyValidation(ApiKeyStatus.INVALID, str(exc) or "Unable to validate Google key")
    if response.status_code >= 400:
        return KeyValidation(ApiKeyStatus.INVALID, f"API error: {response.status_code}")
    return KeyValidation(ApiKeyStatus.VALID)


async def validate_api_key(provider: ApiProvider, api_key: str) -> KeyValidation:
    """Probe the provider's model-listing endpoint with the key."""
    if provider is ApiProvider.OPENAI:
        return await _validate_openai_key(api_key)
    if provider is ApiProvider.GOOGLE:
        return await _validate_google_key(api_key)
    return await _validate_anthropic_key(api_key)


async def _get_record(
    session: AsyncSession,
    user_id: UUID,
    provider: ApiProvider,
) -> ApiKey | None:
    return await ApiKey.objects.filter_by(user_id=user_id, provider=provider.value).first(session)


async def upsert_api_key(
    session: AsyncSession,
    *,
    user_id: UUID,
    provider: ApiProvider,
    api_key: str,
) -> ApiKeySummary:
    """Encrypt, validate, and store a user's key for a provider."""
    trimmed = api_key.strip()
    if not trimmed:
        raise ValueError("API key is required")
    encrypted_key = encrypt_string(trimmed)
    validation = await validate_api_key(provider, trimmed)
    now = utcnow()

    record = await _get_record(session, user_id, provider)
    if record is None:
        record = ApiKey(user_id=user_id, provider=provider.value, encrypted_key=encrypted_key)
    record.encrypted_key = encrypted_key
    record.last4 = trimmed[-4:]
    record.status = validation.status.value
    record.last_checked_at = now
    record.error_message = validation.error_message
    record.updated_at = now
    session.add(record)
    await session.commit()
    await session.refresh(record)
    logger.info(
        "api_keys.upserted",
        extra={"user_id": str(user_id), "provider": provider.value, "status": record.status},
    )
    return ApiKeySummary.from_record(record)


async def revalidate_api_key(
    session: AsyncSession,
    *,
    user_id: UUID,
    provider: ApiProvider,
) -> ApiKeySummary:
    record = await _get_record(session, user_id, provider)
    if record is None:
        raise ApiKeyNotFoundError
    validation = await validate_api_key(provider, decrypt_string(record.encrypted_key))
    record.status = validation.status.value
    record.last_checked_at = utcnow()
    record.error_message = validation.error_message
    record.updated_at = record.last_checked_at
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return ApiKeySummary.from_record(record)


async def delete_api_key(session: AsyncSession, *, user_id: UUID, provider: ApiProvider) -> bool:
    record = await _get_record(session, user_id, provider)
    if record is None:
        return False
    await session.delete(record)
    await session.commit()
    return True


async def list_api_keys_for_user(session: AsyncSession, user_id: UUID) -> list[ApiKeySummary]:
    records = (
        await ApiKey.objects.filter_by(user_id=user_id)
        .order_by(col(ApiKey.provider).asc())
        .all(session)
    )
    return [ApiKeySummary.from_record(record) for record in records]


async def get_valid_api_key_value(
    session: AsyncSession,
    user_id: UUID,
    provider: ApiProvider,
) -> str | None:
    """Decrypted key when the user's stored key last validated as VALID."""
    record = await _get_record(session, user_id, provider)
    if record is None or record.status != ApiKeyStatus.VALID.value:
        return None
    try:
        return decrypt_string(record.encrypted_key)
    except EncryptionError:
        logger.exception(
            "api_keys.decrypt_failed",
            extra={"user_id": str(user_id), "provider": provider.value},
        )
        return None


async def resolve_api_key(
    session: AsyncSession,
    provider: ApiProvider,
    user_id: UUID | None = None,
) -> ResolvedApiKey:
    """Pick the user's valid key, else the platform key, else report missing."""
    if user_id is not None:
        user_key = await get_valid_api_key_value(session, user_id, provider)
        if user_key:
            return ResolvedApiKey(provider=provider, source="user", api_key=user_key)
    platform_key = get_platform_api_key(provider)
    if platform_key:
        return ResolvedApiKey(provider=provider, source="platform", api_key=platform_key)
    return ResolvedApiKey(provider=provider, source="missing")


async def get_api_key_overview(session: AsyncSession, user_id: UUID) -> list[ApiKeyOverview]:
    summaries = {
        summary.provider: summary for summary in await list_api_keys_for_user(session, user_id)
    }
    overview: list[ApiKeyOverview] = []
    for provider in SUPPORTED_API_PROVIDERS:
        platform_key = get_platform_api_key(provider)
        resolved = await resolve_api_key(session, provider, user_id)
        overview.append(
            ApiKeyOverview(
                provider=provider,
                label=PROVIDER_LABELS[provider],
                user_key=summaries.get(provider.value),
                platform_key=PlatformKeyInfo(
                    available=platform_key is not None,
                    last4=platform_key[-4:] if platform_key else None,
                ),
                in_use=resolved.source,
            )
        )
    return overview
