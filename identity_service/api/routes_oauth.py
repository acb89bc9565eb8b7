"""
OAuth 2.0 sign-in routes.

Endpoints:
- GET  /auth/providers - List configured providers
- GET  /auth/{provider} - Authorization URL for a provider (sets the state cookie)
- GET  /auth/{provider}/callback - Provider redirect target; hands off to the frontend
- POST /auth/exchange - Trade a one-time handoff code for the session token

Only the HTTP layer lives here. Flow logic is in OAuthCoordinator.
"""

import logging
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import RedirectResponse

from identity_service.api.dependencies import CoordinatorDep, ProvidersDep
from identity_service.api.rate_limit import RATE_LIMITS, limiter
from identity_service.core.config import settings
from identity_service.models import schemas
from identity_service.services.oauth import CallbackError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["oauth"])


def _build_redirect_with_params(base_url: str, params: dict[str, str]) -> str:
    """Append query parameters to an existing URL safely."""
    parsed = urlparse(base_url)
    existing_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    existing_params.update(params)
    return urlunparse(parsed._replace(query=urlencode(existing_params)))


def _frontend_callback(params: dict[str, str]) -> RedirectResponse:
    url = _build_redirect_with_params(f"{settings.FRONTEND_URL.rstrip('/')}/auth/callback", params)
    response = RedirectResponse(url=url, status_code=307)
    response.delete_cookie(settings.OAUTH_STATE_COOKIE, path="/")
    return response


@router.get("/providers", response_model=schemas.ProvidersOut)
async def list_oauth_providers(providers: ProvidersDep) -> schemas.ProvidersOut:
    """List the providers that have client credentials configured."""
    return schemas.ProvidersOut(
        providers=[
            schemas.ProviderOut(name=provider.name, display_name=provider.display_name)
            for provider in providers.values()
        ]
    )


@router.post("/exchange", response_model=schemas.ExchangeOut)
@limiter.limit(RATE_LIMITS["oauth_exchange"])
async def exchange_code(
    request: Request,
    payload: schemas.ExchangeIn,
    coordinator: CoordinatorDep,
) -> schemas.ExchangeOut:
    """
    Trade a handoff code for the session token.

    A code works once. Unknown, expired, used and state-mismatched codes
    all answer the same 400.
    """
    entry = coordinator.exchange(payload.code, payload.state)
    return schemas.ExchangeOut(token=entry.token, user=entry.user, is_new_user=entry.is_new_user)


@router.get("/{provider}", response_model=schemas.AuthURLOut)
@limiter.limit(RATE_LIMITS["oauth_login"])
async def oauth_login(
    request: Request,
    response: Response,
    provider: str,
    coordinator: CoordinatorDep,
) -> schemas.AuthURLOut:
    """
    Start sign-in with a provider.

    Returns the provider's authorization URL and remembers the CSRF state
    in a short-lived HttpOnly cookie.

    Example:
        GET /auth/google -> {"auth_url": "https://accounts.google.com/..."}
    """
    auth_url, state = coordinator.authorization_request(provider)
    response.set_cookie(
        key=settings.OAUTH_STATE_COOKIE,
        value=state,
        max_age=settings.OAUTH_STATE_TTL_SECONDS,
        path="/",
        httponly=True,
        secure=settings.ENV == "prod",
        samesite="lax",
    )
    logger.info("Initiating OAuth login with %s", provider)
    return schemas.AuthURLOut(auth_url=auth_url)


@router.get("/{provider}/callback")
@limiter.limit(RATE_LIMITS["oauth_callback"])
async def oauth_callback(
    request: Request,
    provider: str,
    coordinator: CoordinatorDep,
    code: str | None = Query(None, description="Authorization code from the provider"),
    state: str = Query("", description="CSRF state echoed by the provider"),
) -> RedirectResponse:
    """
    Handle the provider redirect.

    The browser is sent on to ``<frontend>/auth/callback`` with either
    ``code`` (a one-time handoff code) and ``state``, or ``error`` set to
    one of missing_code, invalid_state, oauth_failed or
    code_generation_failed.
    """
    coordinator.get_provider(provider)
    expected_state = request.cookies.get(settings.OAUTH_STATE_COOKIE)
    try:
        result = await coordinator.handle_callback(provider, code, state, expected_state)
    except CallbackError as exc:
        return _frontend_callback({"error": exc.reason.value})
    return _frontend_callback({"code": result.handoff_code, "state": result.state})
