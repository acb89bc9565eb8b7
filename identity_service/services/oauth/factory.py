"""Factories for the OAuth provider registry and per-request coordinator."""
import logging

import httpx
from sqlalchemy.orm import Session

from identity_service.core.config import BaseAppSettings, settings
from identity_service.core.security import SessionTokenService
from identity_service.services.account_repository import AccountRepository
from identity_service.services.sync import SyncPipeline

from .handoff_store import HandoffStore
from .providers import FacebookOAuthProvider, GoogleOAuthProvider, LineOAuthProvider, OAuthProvider
from .resolver import IdentityResolver
from .service import OAuthCoordinator

logger = logging.getLogger(__name__)

_PROVIDER_CLASSES: tuple[type[OAuthProvider], ...] = (
    GoogleOAuthProvider,
    FacebookOAuthProvider,
    LineOAuthProvider,
)


def build_providers(
    config: BaseAppSettings = settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, OAuthProvider]:
    """
    Instantiate every provider that has client credentials configured.

    Args:
        config: Application settings
        transport: Optional httpx transport shared by all providers

    Returns:
        Mapping of provider name to provider
    """
    providers: dict[str, OAuthProvider] = {}
    for provider_cls in _PROVIDER_CLASSES:
        name = provider_cls.name
        prefix = name.upper()
        client_id = getattr(config, f"{prefix}_CLIENT_ID")
        client_secret = getattr(config, f"{prefix}_CLIENT_SECRET")
        if not (client_id and client_secret):
            logger.warning("%s OAuth not configured (missing client ID/secret)", provider_cls.display_name)
            continue
        providers[name] = provider_cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=config.redirect_url_for(name),
            timeout=config.OAUTH_HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        logger.info("%s OAuth provider enabled", provider_cls.display_name)
    return providers


def create_oauth_coordinator(
    db: Session,
    providers: dict[str, OAuthProvider],
    handoff_store: HandoffStore,
    sync: SyncPipeline,
    tokens: SessionTokenService | None = None,
) -> OAuthCoordinator:
    return OAuthCoordinator(
        providers=providers,
        resolver=IdentityResolver(AccountRepository(db)),
        tokens=tokens or SessionTokenService(),
        handoff_store=handoff_store,
        sync=sync,
    )
