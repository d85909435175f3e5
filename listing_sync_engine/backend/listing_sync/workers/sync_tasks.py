# backend/listing_sync/workers/sync_tasks.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from ..db import SessionLocal
from ..services.sweeper import sweep
from ..services.sync_orchestrator import SyncConfig, run_sync
from .celery_app import celery_app

log = logging.getLogger("listing_sync.worker")


@celery_app.task(
    bind=True,
    acks_late=True,
    name="listing_sync.workers.sync_tasks.sync_listings",
)
def sync_listings(
    self,
    providers: Optional[list[str]] = None,
    scopes: Optional[list[str]] = None,
    force_full_sync: bool = False,
    sweep_after: bool = False,
) -> dict:
    """
    One orchestrator run. The run log is written by the orchestrator whatever
    happens to the providers, so the task itself does not retry: tomorrow's
    run picks up where this one failed.

    sweep_after: retire stale listings once the run finished. Skipped when the
    run failed outright, since nothing was re-observed.
    """
    summary = run_sync(
        SyncConfig(providers=providers, scopes=scopes, force_full_sync=bool(force_full_sync))
    )
    out = {"ok": summary.status != "failed", "sync": summary.as_dict()}

    if sweep_after:
        if summary.status == "failed":
            log.warning("skipping sweep after failed sync run", extra={"run_id": summary.run_id})
            out["sweep"] = None
        else:
            out["sweep"] = _sweep()
    return out


@celery_app.task(
    bind=True,
    name="listing_sync.workers.sync_tasks.sweep_stale_listings",
)
def sweep_stale_listings(self, retention_window_days: Optional[int] = None, dry_run: bool = False) -> dict:
    return _sweep(retention_window_days, dry_run=bool(dry_run))


def _sweep(retention_window_days: Optional[int] = None, *, dry_run: bool = False) -> dict:
    db = SessionLocal()
    try:
        window = timedelta(days=int(retention_window_days)) if retention_window_days else None
        return sweep(db, window, dry_run=bool(dry_run)).as_dict()
    finally:
        db.close()
