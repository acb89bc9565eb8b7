"""
Identity and provider-link models.

An Identity is the local account; a ProviderLink ties it to one external
OAuth account. Uniqueness rules are enforced by the database:
- email and username are unique across identities
- (provider, provider_subject_id) is unique across links
- an identity has at most one link per provider
"""

from __future__ import annotations

import datetime as dt
import enum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from identity_service.db.base_class import Base, TimestampMixin, UUIDPrimaryKeyMixin


class OAuthProviderName(str, enum.Enum):
    GOOGLE = "google"
    FACEBOOK = "facebook"
    LINE = "line"


class Identity(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "identities"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    # NULL for accounts that never registered a local credential
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    avatar_url: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    role: Mapped[str] = mapped_column(String(32), default="user", server_default="user", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true", nullable=False)
    email_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", index=True, nullable=False
    )
    last_login_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    provider_links: Mapped[list[ProviderLink]] = relationship(
        back_populates="identity",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Identity(id={self.id}, username={self.username})>"


class ProviderLink(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "provider_links"

    identity_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[OAuthProviderName] = mapped_column(
        Enum(
            OAuthProviderName,
            name="oauth_provider_name",
            native_enum=False,
            create_constraint=True,
            length=50,
            validate_strings=True,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        index=True,
    )
    provider_subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, default="", nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, default="", nullable=False)
    token_expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    profile_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    identity: Mapped[Identity] = relationship(back_populates="provider_links")

    __table_args__ = (
        UniqueConstraint("provider", "provider_subject_id", name="uq_provider_links_provider_subject"),
        UniqueConstraint("identity_id", "provider", name="uq_provider_links_identity_provider"),
    )

    def __repr__(self) -> str:
        """String representation (no tokens)."""
        return (
            f"<ProviderLink(id={self.id}, "
            f"identity_id={self.identity_id}, "
            f"provider={self.provider})>"
        )
