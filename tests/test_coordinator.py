"""Tests for the OAuth callback state machine and handoff exchange."""
import pytest

from identity_service.core.exceptions import HandoffMiss
from identity_service.services.oauth import CallbackError, CallbackReason, CallbackStage, GoogleOAuthProvider

from .conftest import ProviderTransport, make_provider


@pytest.mark.asyncio
async def test_callback_then_exchange_returns_minted_session(coordinator, token_service, recording_sync):
    result = await coordinator.handle_callback("google", "auth-code", "state-1")

    assert result.stage is CallbackStage.COMPLETED
    assert result.is_new_user is True
    assert result.state == "state-1"

    entry = coordinator.exchange(result.handoff_code, "state-1")

    claims = token_service.validate(entry.token)
    assert claims["sub"] == result.identity_id
    assert claims["email"] == "alice@example.com"
    assert entry.user.id == result.identity_id
    assert entry.user.display_name == "Alice Liddell"
    assert entry.is_new_user is True
    assert recording_sync.actions == ["created"]
    assert recording_sync.tasks[0].identity_id == result.identity_id

    with pytest.raises(HandoffMiss):
        coordinator.exchange(result.handoff_code, "state-1")


@pytest.mark.asyncio
async def test_relogin_does_not_emit_created_event(coordinator, recording_sync):
    first = await coordinator.handle_callback("google", "code-1", "s")
    second = await coordinator.handle_callback("google", "code-2", "s")

    assert second.is_new_user is False
    assert second.identity_id == first.identity_id
    assert recording_sync.actions == ["created"]


@pytest.mark.asyncio
async def test_missing_code(coordinator, google_transport):
    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", None, "s")

    assert exc_info.value.reason is CallbackReason.MISSING_CODE
    assert google_transport.requests == []


@pytest.mark.asyncio
async def test_state_mismatch_against_established_state(coordinator, google_transport):
    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", "code", "attacker-state", expected_state="cookie-state")

    assert exc_info.value.reason is CallbackReason.INVALID_STATE
    assert exc_info.value.stage is CallbackStage.STARTED
    assert google_transport.requests == []


@pytest.mark.asyncio
async def test_state_check_skipped_without_established_state(coordinator):
    result = await coordinator.handle_callback("google", "code", "anything", expected_state=None)

    assert result.handoff_code


@pytest.mark.asyncio
async def test_provider_rejection_is_oauth_failed(coordinator, handoff_store):
    coordinator._providers = {"google": make_provider(GoogleOAuthProvider, ProviderTransport(token_status=400))}

    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", "expired", "s")

    assert exc_info.value.reason is CallbackReason.OAUTH_FAILED
    assert exc_info.value.stage is CallbackStage.STARTED
    assert len(handoff_store) == 0


@pytest.mark.asyncio
async def test_profile_failure_records_stage(coordinator):
    coordinator._providers = {"google": make_provider(GoogleOAuthProvider, ProviderTransport(userinfo_status=500))}

    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", "code", "s")

    assert exc_info.value.reason is CallbackReason.OAUTH_FAILED
    assert exc_info.value.stage is CallbackStage.CODE_EXCHANGED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "transport",
    [
        ProviderTransport(userinfo=["not", "an", "object"]),
        ProviderTransport(token_payload={"access_token": "a", "expires_in": "soon"}),
    ],
)
async def test_malformed_provider_response_is_oauth_failed(coordinator, handoff_store, transport):
    coordinator._providers = {"google": make_provider(GoogleOAuthProvider, transport)}

    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", "code", "s")

    assert exc_info.value.reason is CallbackReason.OAUTH_FAILED
    assert len(handoff_store) == 0


@pytest.mark.asyncio
async def test_unknown_provider_is_oauth_failed(coordinator):
    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("myspace", "code", "s")

    assert exc_info.value.reason is CallbackReason.OAUTH_FAILED


@pytest.mark.asyncio
async def test_handoff_store_failure_is_code_generation_failed(coordinator, monkeypatch):
    def broken_generate(*args, **kwargs):
        raise RuntimeError("entropy source unavailable")

    monkeypatch.setattr(coordinator.handoff_store, "generate", broken_generate)

    with pytest.raises(CallbackError) as exc_info:
        await coordinator.handle_callback("google", "code", "s")

    assert exc_info.value.reason is CallbackReason.CODE_GENERATION_FAILED
    assert exc_info.value.stage is CallbackStage.TOKEN_MINTED


@pytest.mark.asyncio
async def test_exchange_with_wrong_state_keeps_code_for_owner(coordinator):
    result = await coordinator.handle_callback("google", "code", "owner-state")

    with pytest.raises(HandoffMiss):
        coordinator.exchange(result.handoff_code, "other-state")

    assert coordinator.exchange(result.handoff_code, "owner-state").user.id == result.identity_id


def test_authorization_request_mints_fresh_state(coordinator):
    url_1, state_1 = coordinator.authorization_request("google")
    url_2, state_2 = coordinator.authorization_request("google")

    assert state_1 != state_2
    assert f"state={state_1}" in url_1
    assert f"state={state_2}" in url_2
