"""OAuth 2.0 sign-in and identity federation.

Providers:
- Google (OAuth 2.0 + OpenID Connect)
- Facebook (Graph API)
- LINE (LINE Login v2.1)
"""
from .exceptions import OAuthProfileError, OAuthTokenError
from .factory import build_providers, create_oauth_coordinator
from .handoff_store import HandoffEntry, HandoffStore
from .profiles import NormalizedProfile, TokenPair, placeholder_email
from .providers import (
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    LineOAuthProvider,
    OAuthProvider,
)
from .resolver import IdentityResolver, ResolvedIdentity, generate_username
from .service import CallbackError, CallbackReason, CallbackResult, CallbackStage, OAuthCoordinator

__all__ = [
    # Exceptions
    "OAuthProfileError",
    "OAuthTokenError",
    "CallbackError",
    # Providers
    "OAuthProvider",
    "GoogleOAuthProvider",
    "FacebookOAuthProvider",
    "LineOAuthProvider",
    # Profiles
    "NormalizedProfile",
    "TokenPair",
    "placeholder_email",
    # Components
    "HandoffEntry",
    "HandoffStore",
    "IdentityResolver",
    "ResolvedIdentity",
    "generate_username",
    "OAuthCoordinator",
    "CallbackReason",
    "CallbackResult",
    "CallbackStage",
    # Factory
    "build_providers",
    "create_oauth_coordinator",
]
