"""Facebook Login (Graph API) implementation."""
from .base import OAuthProvider

GRAPH_API_VERSION = "v19.0"


class FacebookOAuthProvider(OAuthProvider):
    """Facebook Login. Email is optional: users may decline the permission."""

    name = "facebook"
    display_name = "Facebook"

    @property
    def authorization_url(self) -> str:
        return f"https://www.facebook.com/{GRAPH_API_VERSION}/dialog/oauth"

    @property
    def token_url(self) -> str:
        return f"https://graph.facebook.com/{GRAPH_API_VERSION}/oauth/access_token"

    @property
    def user_info_url(self) -> str:
        return "https://graph.facebook.com/me?fields=id,name,email,picture"

    @property
    def scopes(self) -> list[str]:
        return ["email", "public_profile"]
