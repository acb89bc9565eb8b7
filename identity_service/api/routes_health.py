from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from identity_service.db.session import get_db

router = APIRouter(tags=["health"])


def _check_db(db: Session) -> bool:
    db.execute(text("SELECT 1"))
    return True


@router.get("/healthz")
async def healthz(db: Annotated[Session, Depends(get_db)]) -> dict[str, str]:
    """Basic liveness probe (cheap)."""
    try:
        _check_db(db)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=503, detail="Database connectivity check failed") from exc
    return {"status": "ok"}


@router.get("/live")
async def live() -> dict[str, str]:
    """Kubernetes-style liveness endpoint (no dependencies)."""
    return {"status": "alive"}


@router.get("/ready")
async def ready(request: Request, db: Annotated[Session, Depends(get_db)]) -> dict[str, object]:
    """Readiness probe: database reachable and at least one provider configured."""
    try:
        db_ok = _check_db(db)
    except Exception:  # noqa: BLE001
        db_ok = False
    providers = sorted(request.app.state.oauth_providers)
    sync = request.app.state.sync_pipeline
    body: dict[str, object] = {
        "db": db_ok,
        "providers": providers,
        "sync_enabled": sync.enabled,
        "sync_pending": sync.pending,
    }
    if not (db_ok and providers):
        raise HTTPException(status_code=503, detail=body)
    return {"status": "ready", **body}
