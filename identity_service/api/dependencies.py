"""Request-scoped dependencies shared by the routers."""
from typing import Annotated, TypeAlias

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from identity_service.core.exceptions import SessionTokenError
from identity_service.core.security import SessionTokenService
from identity_service.db.session import get_db
from identity_service.services.account_service import AccountService
from identity_service.services.oauth import HandoffStore, OAuthCoordinator, OAuthProvider, create_oauth_coordinator
from identity_service.services.sync import SyncPipeline

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]

_bearer = HTTPBearer(auto_error=False)


def get_providers(request: Request) -> dict[str, OAuthProvider]:
    return request.app.state.oauth_providers


def get_handoff_store(request: Request) -> HandoffStore:
    return request.app.state.handoff_store


def get_sync_pipeline(request: Request) -> SyncPipeline:
    return request.app.state.sync_pipeline


def get_token_service(request: Request) -> SessionTokenService:
    return request.app.state.token_service


ProvidersDep: TypeAlias = Annotated[dict[str, OAuthProvider], Depends(get_providers)]
SyncDep: TypeAlias = Annotated[SyncPipeline, Depends(get_sync_pipeline)]
TokenServiceDep: TypeAlias = Annotated[SessionTokenService, Depends(get_token_service)]


def get_coordinator(
    db: DbDep,
    providers: ProvidersDep,
    handoff_store: Annotated[HandoffStore, Depends(get_handoff_store)],
    sync: SyncDep,
    tokens: TokenServiceDep,
) -> OAuthCoordinator:
    return create_oauth_coordinator(db, providers, handoff_store, sync, tokens)


def get_account_service(db: DbDep, sync: SyncDep) -> AccountService:
    return AccountService(db, sync)


CoordinatorDep: TypeAlias = Annotated[OAuthCoordinator, Depends(get_coordinator)]
AccountServiceDep: TypeAlias = Annotated[AccountService, Depends(get_account_service)]


def get_current_identity_id(
    tokens: TokenServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> str:
    """Identity id from a valid Bearer session token."""
    if credentials is None or not credentials.credentials:
        raise SessionTokenError("Missing bearer token")
    return tokens.validate(credentials.credentials)["sub"]


CurrentIdentityDep: TypeAlias = Annotated[str, Depends(get_current_identity_id)]
