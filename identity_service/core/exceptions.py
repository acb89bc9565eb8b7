"""Exception hierarchy for the identity service.

Every error the service raises on purpose derives from IdentityServiceError,
so the API layer can render it without knowing the concrete type.

Error codes follow pattern: [CATEGORY][NUMBER]
- OAU: Provider / OAuth errors (100-199)
- ACC: Account persistence errors (200-299)
- HND: Handoff code errors (300-399)
- SYN: Downstream sync errors (400-499)
- SES: Session token errors (500-599)
"""

from __future__ import annotations

from typing import Any


class IdentityServiceError(Exception):
    """Base exception for all identity service errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# PROVIDER ERRORS (OAU100-199)
# ============================================================================

class ProviderAuthError(IdentityServiceError):
    """Provider unreachable or rejected the authorization grant."""

    def __init__(self, message: str = "OAuth provider authentication failed", code: str = "OAU100", **details: Any):
        super().__init__(message=message, code=code, status_code=502, details=details)


class ProviderNotConfiguredError(IdentityServiceError):
    """Requested provider is unknown or has no client credentials."""

    def __init__(self, provider: str):
        super().__init__(
            message=f"OAuth provider '{provider}' is not available",
            code="OAU103",
            status_code=404,
            details={"provider": provider},
        )


# ============================================================================
# ACCOUNT ERRORS (ACC200-299)
# ============================================================================

class PersistenceError(IdentityServiceError):
    """Account repository failure (transport error or constraint violation)."""

    def __init__(self, message: str = "Account storage failure", **details: Any):
        super().__init__(message=message, code="ACC200", status_code=500, details=details)


class IdentityNotFoundError(IdentityServiceError):
    def __init__(self, identity_id: str | None = None):
        super().__init__(
            message="Identity not found",
            code="ACC201",
            status_code=404,
            details={"identity_id": identity_id} if identity_id else {},
        )


# ============================================================================
# HANDOFF ERRORS (HND300-399)
# ============================================================================

class HandoffMiss(IdentityServiceError):
    """Handoff code absent, expired, already used or minted for another state.

    The message is deliberately the same for every cause.
    """

    def __init__(self):
        super().__init__(
            message="Invalid or expired authorization code",
            code="HND300",
            status_code=400,
        )


# ============================================================================
# SYNC ERRORS (SYN400-499)
# ============================================================================

class DeliveryError(IdentityServiceError):
    """A sync channel refused or failed to accept a payload."""

    def __init__(self, message: str, channel: str):
        super().__init__(message=message, code="SYN400", status_code=502, details={"channel": channel})
        self.channel = channel


# ============================================================================
# SESSION TOKEN ERRORS (SES500-599)
# ============================================================================

class SessionTokenError(IdentityServiceError):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message=message, code="SES500", status_code=401)


class SessionTokenExpiredError(SessionTokenError):
    def __init__(self):
        super().__init__(message="Token expired")
        self.code = "SES501"
