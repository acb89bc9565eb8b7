"""OAuth coordinator.

Responsibilities:
- Mint the CSRF state and authorization URL for a provider
- Run a provider callback to completion and hand back a one-time code
- Trade that code for the session token, once

A callback moves through CallbackStage in order. Any failure ends it in
ERRORED with one of a fixed set of reasons, which is all the browser is
ever told.
"""
from __future__ import annotations

import enum
import logging
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass

from identity_service.core.exceptions import (
    HandoffMiss,
    IdentityServiceError,
    PersistenceError,
    ProviderAuthError,
    ProviderNotConfiguredError,
)
from identity_service.core.security import SessionTokenService
from identity_service.models.schemas import UserOut
from identity_service.services.sync import SyncAction, SyncPipeline, SyncTask

from .handoff_store import HandoffEntry, HandoffStore
from .providers import OAuthProvider
from .resolver import IdentityResolver

logger = logging.getLogger(__name__)


class CallbackStage(str, enum.Enum):
    STARTED = "started"
    CODE_EXCHANGED = "code_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    IDENTITY_RESOLVED = "identity_resolved"
    TOKEN_MINTED = "token_minted"
    HANDOFF_STORED = "handoff_stored"
    COMPLETED = "completed"
    ERRORED = "errored"


class CallbackReason(str, enum.Enum):
    MISSING_CODE = "missing_code"
    INVALID_STATE = "invalid_state"
    OAUTH_FAILED = "oauth_failed"
    CODE_GENERATION_FAILED = "code_generation_failed"


class CallbackError(IdentityServiceError):
    """Callback aborted; ``reason`` is safe to show the browser."""

    def __init__(self, reason: CallbackReason, stage: CallbackStage):
        super().__init__(
            message=f"OAuth callback failed: {reason.value}",
            code="OAU110",
            status_code=400,
            details={"reason": reason.value, "stage": stage.value},
        )
        self.reason = reason
        self.stage = stage


@dataclass
class CallbackResult:
    handoff_code: str
    state: str
    identity_id: str
    is_new_user: bool
    stage: CallbackStage = CallbackStage.COMPLETED


def new_state() -> str:
    """Cryptographically random CSRF state value."""
    return secrets.token_urlsafe(24)


class OAuthCoordinator:
    def __init__(
        self,
        providers: Mapping[str, OAuthProvider],
        resolver: IdentityResolver,
        tokens: SessionTokenService,
        handoff_store: HandoffStore,
        sync: SyncPipeline,
    ):
        self._providers = providers
        self.resolver = resolver
        self.tokens = tokens
        self.handoff_store = handoff_store
        self.sync = sync

    def get_provider(self, name: str) -> OAuthProvider:
        """
        Raises:
            ProviderNotConfiguredError: If provider not registered
        """
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotConfiguredError(name)
        return provider

    def authorization_request(self, provider_name: str) -> tuple[str, str]:
        """Return (authorization URL, state) for a fresh sign-in."""
        provider = self.get_provider(provider_name)
        state = new_state()
        return provider.get_authorization_url(state), state

    async def handle_callback(
        self,
        provider_name: str,
        code: str | None,
        state: str = "",
        expected_state: str | None = None,
    ) -> CallbackResult:
        """
        Complete a provider callback.

        ``expected_state`` is the state established when the flow began
        (the state cookie). When it is absent the comparison is skipped
        and the provider's own state echo is relied on.

        Raises:
            CallbackError: with the reason to report to the browser
        """
        started = time.monotonic()
        stage = CallbackStage.STARTED
        logger.info("OAuth callback started | provider=%s", provider_name)

        if not code:
            raise self._fail(provider_name, stage, CallbackReason.MISSING_CODE)
        if expected_state and expected_state != state:
            raise self._fail(provider_name, stage, CallbackReason.INVALID_STATE)

        try:
            provider = self.get_provider(provider_name)
            token_pair = await provider.exchange_code(code)
            stage = CallbackStage.CODE_EXCHANGED
            profile = await provider.fetch_profile(token_pair)
            stage = CallbackStage.PROFILE_FETCHED
            resolved = self.resolver.find_or_create(provider.name, profile, token_pair)
            stage = CallbackStage.IDENTITY_RESOLVED
        except (ProviderAuthError, ProviderNotConfiguredError, PersistenceError) as exc:
            raise self._fail(provider_name, stage, CallbackReason.OAUTH_FAILED, exc) from exc

        identity = resolved.identity
        if resolved.is_new:
            self.sync.submit(SyncTask.from_identity(identity, SyncAction.CREATED))

        try:
            session_token = self.tokens.mint(identity)
        except Exception as exc:  # noqa: BLE001
            raise self._fail(provider_name, stage, CallbackReason.OAUTH_FAILED, exc) from exc
        stage = CallbackStage.TOKEN_MINTED

        try:
            handoff_code = self.handoff_store.generate(
                session_token,
                UserOut.from_identity(identity),
                resolved.is_new,
                state,
            )
        except Exception as exc:  # noqa: BLE001
            raise self._fail(provider_name, stage, CallbackReason.CODE_GENERATION_FAILED, exc) from exc
        stage = CallbackStage.HANDOFF_STORED

        logger.info(
            "OAuth callback completed | provider=%s identity=%s is_new_user=%s duration_ms=%d",
            provider_name,
            identity.id,
            resolved.is_new,
            (time.monotonic() - started) * 1000,
        )
        return CallbackResult(
            handoff_code=handoff_code,
            state=state,
            identity_id=identity.id,
            is_new_user=resolved.is_new,
        )

    def exchange(self, code: str, state: str = "") -> HandoffEntry:
        """
        Trade a handoff code for its entry, exactly once.

        Raises:
            HandoffMiss: code unknown, expired, already used, or state mismatch
        """
        entry = self.handoff_store.consume(code, state)
        if entry is None:
            logger.info("Handoff exchange rejected")
            raise HandoffMiss()
        logger.info("Handoff exchanged for identity %s", entry.user.id)
        return entry

    @staticmethod
    def _fail(
        provider_name: str,
        stage: CallbackStage,
        reason: CallbackReason,
        exc: BaseException | None = None,
    ) -> CallbackError:
        if exc is None or isinstance(exc, IdentityServiceError):
            logger.warning(
                "OAuth callback %s | provider=%s failed_at=%s reason=%s error=%s",
                CallbackStage.ERRORED.value,
                provider_name,
                stage.value,
                reason.value,
                getattr(exc, "message", None),
            )
        else:
            logger.exception(
                "OAuth callback %s | provider=%s failed_at=%s reason=%s",
                CallbackStage.ERRORED.value,
                provider_name,
                stage.value,
                reason.value,
                exc_info=exc,
            )
        return CallbackError(reason, stage)
