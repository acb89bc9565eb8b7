"""Identity lifecycle operations that downstream systems must hear about."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from identity_service.core.exceptions import IdentityNotFoundError
from identity_service.models.identity_models import Identity
from identity_service.models.schemas import UserUpdate
from identity_service.services.account_repository import AccountRepository
from identity_service.services.sync import SyncAction, SyncPipeline, SyncTask

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session, sync: SyncPipeline):
        self.repository = AccountRepository(db)
        self.sync = sync

    def get_identity(self, identity_id: str) -> Identity:
        identity = self.repository.get_by_id(identity_id)
        if identity is None or not identity.is_active:
            raise IdentityNotFoundError(identity_id)
        return identity

    def update_profile(self, identity_id: str, changes: UserUpdate) -> Identity:
        identity = self.get_identity(identity_id)
        with self.repository.transaction():
            if changes.display_name:
                identity.display_name = changes.display_name
            if changes.avatar_url:
                identity.avatar_url = changes.avatar_url
            self.repository.update(identity)
        self.sync.submit(SyncTask.from_identity(identity, SyncAction.UPDATED))
        logger.info("Profile updated for identity %s", identity.id)
        return identity

    def delete_identity(self, identity_id: str) -> None:
        identity = self.get_identity(identity_id)
        # Snapshot before the row goes away
        task = SyncTask.from_identity(identity, SyncAction.DELETED)
        with self.repository.transaction():
            self.repository.delete(identity)
        self.sync.submit(task)
        logger.info("Identity %s deleted", identity_id)
