from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from identity_service.core.config import settings
from identity_service.core.context import get_request_id

if TYPE_CHECKING:
    from identity_service.models.identity_models import Identity


class SyncAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def _timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class SyncTask:
    """Minimal identity event; downstream services enrich profiles themselves."""

    identity_id: str
    email: str
    username: str
    action: SyncAction
    request_id: str = ""
    timestamp: str = field(default_factory=_timestamp)
    service_name: str = field(default_factory=lambda: settings.SYNC_SERVICE_NAME)

    @classmethod
    def from_identity(cls, identity: Identity, action: SyncAction) -> SyncTask:
        return cls(
            identity_id=identity.id,
            email=identity.email,
            username=identity.username,
            action=action,
            request_id=get_request_id() or "",
        )

    @property
    def topic(self) -> str:
        return self.action.value

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.identity_id,
            "email": self.email,
            "username": self.username,
            "action": self.action.value,
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "service_name": self.service_name,
        }
