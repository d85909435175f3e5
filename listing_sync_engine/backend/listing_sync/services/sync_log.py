# backend/listing_sync/services/sync_log.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session, selectinload

from ..domain.errors import SyncLogFinalizedError
from ..models import SyncRun, SyncRunJob

TERMINAL = {"success", "partial", "failed"}


def _utcnow() -> datetime:
    return datetime.utcnow()


def _dumps(v: Any) -> str:
    return json.dumps(v, sort_keys=True, default=str)


def _loads_list(s: Optional[str]) -> list:
    if not s:
        return []
    try:
        x = json.loads(s)
        return x if isinstance(x, list) else []
    except Exception:
        return []


def start_run(
    db: Session,
    *,
    providers: list[str],
    scopes: list[str],
    sync_type: str,
    started_at: Optional[datetime] = None,
) -> SyncRun:
    """Open the single log entry for one orchestrator invocation (committed immediately)."""
    row = SyncRun(
        providers_json=_dumps(list(providers)),
        scopes_json=_dumps(list(scopes)),
        sync_type=sync_type,
        status="running",
        started_at=started_at or _utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _open_run(db: Session, run_id: int) -> SyncRun:
    run = db.scalar(select(SyncRun).where(SyncRun.id == int(run_id)))
    if run is None:
        raise LookupError(f"sync run {run_id} not found")
    if run.finished_at is not None or run.status in TERMINAL:
        raise SyncLogFinalizedError(f"sync run {run_id} is already finalized ({run.status})")
    return run


def record_job(
    db: Session,
    run_id: int,
    *,
    provider: str,
    scope_key: str,
    sync_type: str,
    status: str,
    fetched: int,
    counts: dict[str, int],
    error_type: Optional[str],
    error: Optional[str],
    started_at: datetime,
    finished_at: datetime,
) -> SyncRunJob:
    _open_run(db, run_id)
    row = SyncRunJob(
        run_id=int(run_id),
        provider=provider,
        scope_key=scope_key,
        sync_type=sync_type,
        status=status,
        fetched=int(fetched),
        added=int(counts.get("added", 0)),
        updated=int(counts.get("updated", 0)),
        unchanged=int(counts.get("unchanged", 0)),
        failed=int(counts.get("failed", 0)),
        error_type=error_type,
        error=error,
        started_at=started_at,
        finished_at=finished_at,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def finalize_run(
    db: Session,
    run_id: int,
    *,
    status: str,
    counts: dict[str, int],
    error_summary: Optional[str] = None,
    finished_at: Optional[datetime] = None,
) -> SyncRun:
    """
    Close a run exactly once. A second call raises SyncLogFinalizedError and
    leaves the stored entry untouched.
    """
    if status not in TERMINAL:
        raise ValueError(f"not a terminal sync status: {status!r}")
    run = _open_run(db, run_id)
    run.status = status
    run.added = int(counts.get("added", 0))
    run.updated = int(counts.get("updated", 0))
    run.unchanged = int(counts.get("unchanged", 0))
    run.failed = int(counts.get("failed", 0))
    run.error_summary = error_summary
    run.finished_at = finished_at or _utcnow()
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


# -----------------------------
# Read surface
# -----------------------------
def get_last_sync_status(db: Session) -> Optional[SyncRun]:
    """Most recent finalized run, or None before the first one finishes."""
    return db.scalar(
        select(SyncRun)
        .options(selectinload(SyncRun.jobs))
        .where(SyncRun.finished_at.is_not(None))
        .order_by(desc(SyncRun.finished_at), desc(SyncRun.id))
        .limit(1)
    )


def get_run(db: Session, run_id: int) -> Optional[SyncRun]:
    return db.scalar(select(SyncRun).options(selectinload(SyncRun.jobs)).where(SyncRun.id == int(run_id)))


def get_sync_history(db: Session, limit: int = 20) -> list[SyncRun]:
    """Newest first, running entries included."""
    limit = max(1, min(int(limit), 500))
    return list(
        db.scalars(
            select(SyncRun).options(selectinload(SyncRun.jobs)).order_by(desc(SyncRun.id)).limit(limit)
        ).all()
    )


def last_successful_job(
    db: Session,
    *,
    provider: str,
    scope_key: str,
    sync_type: Optional[str] = None,
) -> Optional[SyncRunJob]:
    q = (
        select(SyncRunJob)
        .where(SyncRunJob.provider == provider)
        .where(SyncRunJob.scope_key == scope_key)
        .where(SyncRunJob.status == "success")
    )
    if sync_type:
        q = q.where(SyncRunJob.sync_type == sync_type)
    return db.scalar(q.order_by(desc(SyncRunJob.started_at), desc(SyncRunJob.id)).limit(1))


def run_to_dict(run: SyncRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "status": run.status,
        "sync_type": run.sync_type,
        "providers": _loads_list(run.providers_json),
        "scopes": _loads_list(run.scopes_json),
        "added": run.added,
        "updated": run.updated,
        "unchanged": run.unchanged,
        "failed": run.failed,
        "error_summary": run.error_summary,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "jobs": [
            {
                "provider": j.provider,
                "scope": j.scope_key,
                "sync_type": j.sync_type,
                "status": j.status,
                "fetched": j.fetched,
                "added": j.added,
                "updated": j.updated,
                "unchanged": j.unchanged,
                "failed": j.failed,
                "error_type": j.error_type,
                "error": j.error,
            }
            for j in run.jobs
        ],
    }
