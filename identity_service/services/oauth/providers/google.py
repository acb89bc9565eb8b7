"""Google OAuth 2.0 / OpenID Connect implementation."""
from .base import OAuthProvider


class GoogleOAuthProvider(OAuthProvider):
    """Google OAuth 2.0 / OpenID Connect implementation."""

    name = "google"
    display_name = "Google"

    @property
    def authorization_url(self) -> str:
        return "https://accounts.google.com/o/oauth2/v2/auth"

    @property
    def token_url(self) -> str:
        return "https://oauth2.googleapis.com/token"

    @property
    def user_info_url(self) -> str:
        return "https://www.googleapis.com/oauth2/v2/userinfo"

    @property
    def scopes(self) -> list[str]:
        return [
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ]

    def extra_authorization_params(self) -> dict[str, str]:
        # Offline access so Google issues a refresh token
        return {"access_type": "offline"}
