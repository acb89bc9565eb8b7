"""OAuth service exceptions."""
from identity_service.core.exceptions import ProviderAuthError


class OAuthTokenError(ProviderAuthError):
    """Raised when token exchange fails."""

    def __init__(self, message: str = "Token exchange failed", **details):
        super().__init__(message, code="OAU101", **details)


class OAuthProfileError(ProviderAuthError):
    """Raised when fetching or parsing the provider profile fails."""

    def __init__(self, message: str = "Profile fetch failed", **details):
        super().__init__(message, code="OAU102", **details)
