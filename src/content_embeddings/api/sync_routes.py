"""
Sync Routes

Administrative endpoints for keeping the mirror store aligned with the
vector store.

Security
--------
When ``ADMIN_API_KEY`` is configured, every endpoint requires it via:
- `x-admin-key` header OR
- `key` query parameter
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from .dependencies import get_app_settings, get_sync_service
from .models import SyncExecuteRequest
from ..config import Settings
from ..services.report import RecreateReport, SyncReport, SyncStatus
from ..services.sync_service import SyncService


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    settings: Annotated[Settings, Depends(get_app_settings)],
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Verify the request carries the configured admin key.
    Checks header first, then query param.
    """
    expected_key = (
        settings.admin_api_key.get_secret_value() if settings.admin_api_key else None
    )
    if not expected_key:
        return

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )


router = APIRouter(
    prefix="/sync",
    tags=["sync"],
    dependencies=[Depends(verify_admin)],
)


# ---------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------

@router.get("/status", response_model=SyncStatus)
async def get_sync_status(
    service: Annotated[SyncService, Depends(get_sync_service)],
) -> SyncStatus:
    """
    Compare the stores without changing anything.
    """
    return await service.get_sync_status()


@router.post("/execute", response_model=SyncReport)
async def execute_sync(
    service: Annotated[SyncService, Depends(get_sync_service)],
    req: Optional[SyncExecuteRequest] = None,
) -> SyncReport:
    """
    Reconcile the mirror store against the vector store.

    The report is returned even when individual actions failed; check
    ``success`` and ``errors``.
    """
    req = req or SyncExecuteRequest()
    return await service.sync_from_vector_store(
        remove_orphans=req.remove_orphans,
        dry_run=req.dry_run,
    )


@router.post("/recreate", response_model=RecreateReport)
async def recreate_embeddings(
    service: Annotated[SyncService, Depends(get_sync_service)],
) -> RecreateReport:
    """
    Clear the vector store and embed every mirror entry again.
    """
    return await service.recreate_all_embeddings()
