"""Sync audit log inspection."""

from fastapi import APIRouter, Depends, Query

from pms_sync.services.sync_audit import SyncAuditLog
from pms_sync_api.dependencies import get_audit_log
from pms_sync_api.models.responses import SyncLogList

router = APIRouter(tags=["sync-logs"])


@router.get("/sync-logs", summary="Recent sync log entries", response_model=SyncLogList)
def list_sync_logs(
    limit: int = Query(default=50, ge=1, le=500),
    audit: SyncAuditLog = Depends(get_audit_log),
) -> SyncLogList:
    entries = audit.recent(limit)
    return SyncLogList(entries=entries, count=len(entries))
