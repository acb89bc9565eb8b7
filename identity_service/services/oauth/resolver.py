"""Turn a normalized provider identity into a local Identity.

Three outcomes:
- known (provider, subject): refresh the link's tokens, re-login
- unknown subject, known email: attach a new link to that identity
- otherwise: create identity and link together

All writes of one resolution share a single transaction, so a failed link
insert never leaves a freshly created identity behind. Concurrent first
logins for the same subject or email race on the unique constraints; the
loser gets PersistenceError.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from identity_service.db.base_class import utcnow
from identity_service.models.identity_models import Identity, ProviderLink
from identity_service.services.account_repository import AccountRepository

from .profiles import NormalizedProfile, TokenPair

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9_]+")
USERNAME_MAX_LENGTH = 100


def _disambiguator(length: int = 8) -> str:
    return uuid.uuid4().hex[:length]


def generate_username(email: str, display_name: str, *, email_synthesized: bool = False) -> str:
    """Username candidate: email local part, else slugified display name, else random.

    The random suffix keeps repeated inputs from colliding without a
    check-then-insert round trip.
    """
    if email and not email_synthesized:
        local = email.split("@", 1)[0]
        if local:
            return f"{local[:USERNAME_MAX_LENGTH - 9]}_{_disambiguator()}"

    slug = _SLUG_RE.sub("", display_name.strip().lower().replace(" ", "_"))
    if slug:
        return f"{slug[:USERNAME_MAX_LENGTH - 9]}_{_disambiguator()}"

    return f"user_{_disambiguator(12)}"


@dataclass
class ResolvedIdentity:
    identity: Identity
    link: ProviderLink
    is_new: bool


class IdentityResolver:
    def __init__(self, repository: AccountRepository):
        self.repository = repository

    def find_or_create(self, provider: str, profile: NormalizedProfile, tokens: TokenPair) -> ResolvedIdentity:
        """
        Find or create the identity behind a provider sign-in.

        Raises:
            PersistenceError: any repository failure; nothing is committed
        """
        repo = self.repository
        with repo.transaction():
            link = repo.find_by_provider_and_subject(provider, profile.subject_id)
            if link is not None:
                self._apply_tokens(link, tokens)
                repo.update_link(link)
                identity = link.identity
                self._touch_login(identity)
                logger.info("Re-login via %s for identity %s", provider, identity.id)
                return ResolvedIdentity(identity=identity, link=link, is_new=False)

            identity = repo.get_by_email(profile.email)
            is_new = identity is None
            if is_new:
                identity = repo.create(
                    Identity(
                        email=profile.email,
                        username=generate_username(
                            profile.email,
                            profile.display_name,
                            email_synthesized=profile.email_synthesized,
                        ),
                        password_hash=None,
                        display_name=profile.display_name,
                        avatar_url=profile.avatar_url,
                        role="user",
                        is_active=True,
                        email_verified=True,
                    )
                )
                logger.info("Created identity %s via %s", identity.id, provider)
            else:
                logger.info("Linking %s account to existing identity %s", provider, identity.id)

            link = ProviderLink(
                identity_id=identity.id,
                provider=provider,
                provider_subject_id=profile.subject_id,
                profile_data=profile.raw,
            )
            self._apply_tokens(link, tokens)
            repo.create_link(link)
            self._touch_login(identity)

        return ResolvedIdentity(identity=identity, link=link, is_new=is_new)

    @staticmethod
    def _apply_tokens(link: ProviderLink, tokens: TokenPair) -> None:
        link.access_token = tokens.access_token
        # Providers commonly omit the refresh token on repeat consent
        if tokens.refresh_token or not link.refresh_token:
            link.refresh_token = tokens.refresh_token
        if tokens.expires_at is not None:
            link.token_expires_at = tokens.expires_at

    def _touch_login(self, identity: Identity) -> None:
        identity.last_login_at = utcnow()
        self.repository.update(identity)
