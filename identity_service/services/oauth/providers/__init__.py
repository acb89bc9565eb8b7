"""OAuth providers module."""
from .base import OAuthProvider
from .facebook import FacebookOAuthProvider
from .google import GoogleOAuthProvider
from .line import LineOAuthProvider

__all__ = ["OAuthProvider", "GoogleOAuthProvider", "FacebookOAuthProvider", "LineOAuthProvider"]
