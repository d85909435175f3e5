# backend/listing_sync/routers/sync.py
from __future__ import annotations

import asyncio
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import SweepIn, SweepResultOut, SyncRunIn, SyncRunOut, SyncStatusOut
from ..services import sync_log
from ..services.sweeper import status_totals, sweep
from ..services.sync_orchestrator import SyncConfig, SyncOrchestrator

router = APIRouter(prefix="/sync", tags=["sync"])


def get_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator()


@router.post("/run")
def run_sync_now(
    payload: SyncRunIn,
    enqueue: bool = Query(default=False, description="hand the run to the Celery sync queue"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    if enqueue:
        from ..workers.sync_tasks import sync_listings

        task = sync_listings.delay(
            providers=payload.providers,
            scopes=payload.scopes,
            force_full_sync=payload.force_full_sync,
        )
        return {"queued": True, "task_id": task.id}

    # plain def: FastAPI runs this in its threadpool, so the run gets its own
    # event loop and the server loop stays free
    summary = asyncio.run(
        orchestrator.run(
            SyncConfig(
                providers=payload.providers,
                scopes=payload.scopes,
                force_full_sync=payload.force_full_sync,
                max_pages=payload.max_pages,
                max_results=payload.max_results,
            ),
        )
    )
    return summary.as_dict()


@router.post("/sweep", response_model=SweepResultOut)
def sweep_now(payload: SweepIn, db: Session = Depends(get_db)):
    window = timedelta(days=payload.retention_window_days) if payload.retention_window_days else None
    return sweep(db, window, dry_run=payload.dry_run)


@router.get("/status", response_model=SyncStatusOut)
def last_status(db: Session = Depends(get_db)):
    return SyncStatusOut(
        last_run=sync_log.get_last_sync_status(db),
        totals=status_totals(db),
    )


@router.get("/history", response_model=list[SyncRunOut])
def history(limit: int = Query(default=20, ge=1, le=500), db: Session = Depends(get_db)):
    return sync_log.get_sync_history(db, limit=limit)


@router.get("/runs/{run_id}", response_model=SyncRunOut)
def get_run(run_id: int, db: Session = Depends(get_db)):
    run = sync_log.get_run(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="sync run not found")
    return run
