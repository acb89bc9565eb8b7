"""SQLAlchemy-backed account repository.

CRUD for identities and provider links. Lookups return None when nothing
matches; every driver or constraint failure is raised as PersistenceError.
Writes are flushed, never committed: callers group them with transaction().
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from identity_service.core.exceptions import PersistenceError
from identity_service.models.identity_models import Identity, ProviderLink

logger = logging.getLogger(__name__)


class AccountRepository:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything flushed inside the block, or roll all of it back."""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise self._wrap(exc, "commit") from exc
        except Exception:
            self.db.rollback()
            raise

    # ---- identities -------------------------------------------------------

    def get_by_id(self, identity_id: str) -> Identity | None:
        return self._scalar(select(Identity).where(Identity.id == identity_id), "get_by_id")

    def get_by_email(self, email: str) -> Identity | None:
        return self._scalar(select(Identity).where(func.lower(Identity.email) == email.lower()), "get_by_email")

    def get_by_username(self, username: str) -> Identity | None:
        return self._scalar(select(Identity).where(Identity.username == username), "get_by_username")

    def create(self, identity: Identity) -> Identity:
        self.db.add(identity)
        self._flush("create_identity")
        return identity

    def update(self, identity: Identity) -> Identity:
        self._flush("update_identity")
        return identity

    def delete(self, identity: Identity) -> None:
        self.db.delete(identity)
        self._flush("delete_identity")

    # ---- provider links ---------------------------------------------------

    def find_by_provider_and_subject(self, provider: str, subject_id: str) -> ProviderLink | None:
        stmt = select(ProviderLink).where(
            ProviderLink.provider == provider,
            ProviderLink.provider_subject_id == subject_id,
        )
        return self._scalar(stmt, "find_by_provider_and_subject")

    def create_link(self, link: ProviderLink) -> ProviderLink:
        self.db.add(link)
        self._flush("create_link")
        return link

    def update_link(self, link: ProviderLink) -> ProviderLink:
        self._flush("update_link")
        return link

    # ---- internals --------------------------------------------------------

    def _scalar(self, stmt, operation: str):
        try:
            return self.db.scalar(stmt)
        except SQLAlchemyError as exc:
            raise self._wrap(exc, operation) from exc

    def _flush(self, operation: str) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise self._wrap(exc, operation) from exc

    @staticmethod
    def _wrap(exc: SQLAlchemyError, operation: str) -> PersistenceError:
        kind = "constraint_violation" if isinstance(exc, IntegrityError) else "storage_error"
        logger.error("Account repository %s failed (%s): %s", operation, kind, exc.__class__.__name__)
        return PersistenceError(f"Account repository {operation} failed", operation=operation, kind=kind)
