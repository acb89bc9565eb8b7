"""LINE Login v2.1 implementation.

The profile endpoint never returns an email. When the ``email`` scope was
granted, the email is read from the ID token, which LINE signs with HS256
using the channel secret. Without it the profile normalizes to a
placeholder address.
"""
import logging
from typing import Any

import jwt

from ..profiles import TokenPair
from .base import OAuthProvider

logger = logging.getLogger(__name__)

LINE_ISSUER = "https://access.line.me"


class LineOAuthProvider(OAuthProvider):
    name = "line"
    display_name = "LINE"

    @property
    def authorization_url(self) -> str:
        return "https://access.line.me/oauth2/v2.1/authorize"

    @property
    def token_url(self) -> str:
        return "https://api.line.me/oauth2/v2.1/token"

    @property
    def user_info_url(self) -> str:
        return "https://api.line.me/v2/profile"

    @property
    def scopes(self) -> list[str]:
        return ["profile", "openid", "email"]

    def email_from_id_token(self, id_token: str | None) -> str:
        if not id_token:
            return ""
        try:
            claims = jwt.decode(
                id_token,
                self.client_secret,
                algorithms=["HS256"],
                audience=self.client_id,
                issuer=LINE_ISSUER,
            )
        except jwt.InvalidTokenError as exc:
            logger.warning("Ignoring unverifiable LINE ID token: %s", exc)
            return ""
        return claims.get("email") or ""

    def enrich_user_info(self, user_info: dict[str, Any], tokens: TokenPair) -> dict[str, Any]:
        email = self.email_from_id_token(tokens.id_token)
        return {**user_info, "email": email} if email else user_info
