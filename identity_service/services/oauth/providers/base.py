"""Abstract base class for OAuth 2.0 providers.

Implements the authorization code grant. Subclasses supply endpoints,
scopes and the mapping of the provider's user-info payload.
"""
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlencode

import httpx

from ..exceptions import OAuthProfileError, OAuthTokenError
from ..profiles import NormalizedProfile, TokenPair, parse_profile

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def fingerprint(secret: str) -> str:
    """Short, non-reversible tag for logging codes and tokens."""
    return hashlib.sha256(secret.encode()).hexdigest()[:12]


class OAuthProvider(ABC):
    """
    Abstract base class for OAuth 2.0 providers.

    Every outbound call carries a bounded timeout so a stalled provider
    cannot pin the request handling it.
    """

    name: str
    display_name: str

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize OAuth provider.

        Args:
            client_id: OAuth client ID from provider
            client_secret: OAuth client secret from provider
            redirect_uri: Callback URL for OAuth flow
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def authorization_url(self) -> str:
        """Provider's authorization endpoint."""

    @property
    @abstractmethod
    def token_url(self) -> str:
        """Provider's token exchange endpoint."""

    @property
    @abstractmethod
    def user_info_url(self) -> str:
        """Provider's user info endpoint."""

    @property
    @abstractmethod
    def scopes(self) -> list[str]:
        """Required OAuth scopes."""

    def extra_authorization_params(self) -> dict[str, str]:
        return {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def get_authorization_url(self, state: str) -> str:
        """
        Generate authorization URL for OAuth flow.

        Args:
            state: CSRF protection token

        Returns:
            Full authorization URL with query parameters
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            **self.extra_authorization_params(),
        }
        return f"{self.authorization_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenPair:
        """
        Exchange authorization code for a token pair.

        Raises:
            OAuthTokenError: provider unreachable, code rejected, or no access token returned
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        code_hash = fingerprint(code)
        logger.info("Token exchange attempt | provider=%s code_hash=%s", self.name, code_hash)

        async with self._client() as client:
            try:
                response = await client.post(self.token_url, data=data, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Token exchange failed | provider=%s code_hash=%s status=%s",
                    self.name,
                    code_hash,
                    e.response.status_code,
                )
                raise OAuthTokenError(
                    f"Token exchange failed: {e.response.status_code}", provider=self.name
                ) from e
            except httpx.RequestError as e:
                logger.error("Token exchange request failed | provider=%s error=%s", self.name, e)
                raise OAuthTokenError("Failed to connect to OAuth provider", provider=self.name) from e
            except ValueError as e:
                raise OAuthTokenError("Malformed token response", provider=self.name) from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OAuthTokenError("No access token in response", provider=self.name)
        try:
            tokens = TokenPair.from_response(payload)
        except (TypeError, ValueError, OverflowError) as e:
            raise OAuthTokenError("Malformed token response", provider=self.name) from e
        logger.info("Token exchange SUCCESS | provider=%s code_hash=%s", self.name, code_hash)
        return tokens

    async def get_user_info(self, tokens: TokenPair) -> dict[str, Any]:
        """
        Fetch user information using the access token.

        Raises:
            OAuthProfileError: If fetching user info fails
        """
        headers = {"Authorization": f"Bearer {tokens.access_token}"}
        async with self._client() as client:
            try:
                response = await client.get(self.user_info_url, headers=headers)
                response.raise_for_status()
                user_info = response.json()
            except httpx.HTTPStatusError as e:
                logger.error("User info fetch failed | provider=%s status=%s", self.name, e.response.status_code)
                raise OAuthProfileError(
                    f"User info fetch failed: {e.response.status_code}", provider=self.name
                ) from e
            except httpx.RequestError as e:
                logger.error("User info request failed | provider=%s error=%s", self.name, e)
                raise OAuthProfileError("Failed to connect to OAuth provider", provider=self.name) from e
            except ValueError as e:
                raise OAuthProfileError("Malformed user info response", provider=self.name) from e

        if not isinstance(user_info, dict):
            raise OAuthProfileError("Malformed user info response", provider=self.name)
        return user_info

    def enrich_user_info(self, user_info: dict[str, Any], tokens: TokenPair) -> dict[str, Any]:
        """Hook for providers that carry profile fields outside the user-info endpoint."""
        return user_info

    async def fetch_profile(self, tokens: TokenPair) -> NormalizedProfile:
        user_info = self.enrich_user_info(await self.get_user_info(tokens), tokens)
        try:
            profile = parse_profile(self.name, user_info)
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            raise OAuthProfileError("Unexpected user info payload", provider=self.name) from e
        return profile.normalize()
