# backend/listing_sync/services/sync_orchestrator.py
from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol, Union

from sqlalchemy.orm import Session

from ..clients.base import ProviderAdapter
from ..clients.registry import UnknownProvider, get_adapter
from ..config import default_providers, default_scopes, settings
from ..db import SessionLocal
from ..domain.errors import AdapterError, PartialRunError
from ..domain.importers.base import NormalizedListing, Pagination, Scope
from . import sync_log
from .reconcile import ApplyCounts, apply_batch

log = logging.getLogger("listing_sync.sync")

FULL = "full"
INCREMENTAL = "incremental"

JOB_SUCCESS = "success"
JOB_FAILED = "failed"
JOB_CANCELLED = "cancelled"

# Kept short: error_summary is for humans, the per-job rows hold the details.
MAX_SUMMARY_ERRORS = 10


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass(frozen=True)
class SyncConfig:
    providers: Optional[list[str]] = None
    scopes: Optional[list[Union[str, Scope]]] = None
    force_full_sync: bool = False
    max_concurrency: Optional[int] = None
    page_size: Optional[int] = None
    max_pages: Optional[int] = None
    max_results: Optional[int] = None
    batch_size: Optional[int] = None


@dataclass
class JobPlan:
    provider: str
    scope: Union[str, Scope]
    sync_type: str = FULL
    since: Optional[datetime] = None

    @property
    def scope_key(self) -> str:
        return self.scope.key if isinstance(self.scope, Scope) else str(self.scope)


@dataclass
class JobResult:
    provider: str
    scope_key: str
    sync_type: str
    status: str = JOB_SUCCESS
    fetched: int = 0
    counts: ApplyCounts = field(default_factory=ApplyCounts)
    error_type: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return f"{self.provider}:{self.scope_key}"


@dataclass
class SyncRunSummary:
    run_id: Optional[int]
    status: str
    sync_type: str
    added: int
    updated: int
    unchanged: int
    failed: int
    started_at: datetime
    finished_at: datetime
    jobs: list[JobResult] = field(default_factory=list)
    error_summary: Optional[str] = None
    cancelled: bool = False

    @property
    def failed_jobs(self) -> list[JobResult]:
        return [j for j in self.jobs if j.status != JOB_SUCCESS]

    def raise_for_status(self) -> None:
        if self.status != "success":
            raise PartialRunError(
                run_id=self.run_id,
                status=self.status,
                failed_jobs=[j.label for j in self.failed_jobs],
                failed_records=self.failed,
            )

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "sync_type": self.sync_type,
            "added": self.added,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "error_summary": self.error_summary,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "jobs": [
                {
                    "provider": j.provider,
                    "scope": j.scope_key,
                    "sync_type": j.sync_type,
                    "status": j.status,
                    "fetched": j.fetched,
                    **j.counts.as_dict(),
                    "error_type": j.error_type,
                    "error": j.error,
                }
                for j in self.jobs
            ],
        }


def run_status(jobs: list[JobResult], *, cancelled: bool = False) -> str:
    """
    success: every pair succeeded and no listing failed
    partial: at least one pair succeeded (or, when cancelled, anything was written)
    failed:  nothing succeeded
    """
    if not jobs:
        return "failed"
    ok = [j for j in jobs if j.status == JOB_SUCCESS]
    failed_records = sum(j.counts.failed for j in jobs)
    if cancelled:
        progressed = any(j.counts.processed - j.counts.failed > 0 for j in jobs)
        return "partial" if (ok or progressed) else "failed"
    if len(ok) == len(jobs) and failed_records == 0:
        return "success"
    return "partial" if ok else "failed"


class SyncOrchestrator:
    """
    Drives (provider, scope) fetch + reconcile jobs and writes one SyncRun
    per invocation.

    Jobs run as asyncio tasks bounded by a semaphore (fan-out limit). Each job
    owns its own Session; reconciliation writes are single-record transactions
    so nothing is locked across network calls. Adapter failures are recorded
    on the job and never escape run().
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        adapter_factory: Callable[[str], ProviderAdapter] = get_adapter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory
        self.clock = clock

    async def run(self, config: Optional[SyncConfig] = None, *, cancel: Optional[CancelToken] = None) -> SyncRunSummary:
        config = config or SyncConfig()
        providers = [p.strip().lower() for p in (config.providers or default_providers()) if p and p.strip()]
        scopes: list[Union[str, Scope]] = list(config.scopes or default_scopes())

        started_at = self.clock()
        db = self.session_factory()
        try:
            plans = self._plan(db, providers, scopes, force_full=config.force_full_sync, now=started_at)
            sync_type = FULL if (not plans or any(p.sync_type == FULL for p in plans)) else INCREMENTAL
            run = sync_log.start_run(
                db,
                providers=providers,
                scopes=[p.key if isinstance(p, Scope) else str(p) for p in scopes],
                sync_type=sync_type,
                started_at=started_at,
            )
            run_id = run.id
        finally:
            db.close()

        log.info(
            "sync run started: %d job(s)",
            len(plans),
            extra={"run_id": run_id, "sync_type": sync_type},
        )

        limit = max(1, int(config.max_concurrency or settings.sync_max_concurrency))
        sem = asyncio.Semaphore(limit)
        results: list[JobResult] = [
            JobResult(provider=p.provider, scope_key=p.scope_key, sync_type=p.sync_type) for p in plans
        ]
        tasks = [
            asyncio.create_task(self._run_job(run_id, plan, result, config, sem, cancel))
            for plan, result in zip(plans, results)
        ]

        cancelled = False
        try:
            if tasks:
                await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            cancelled = True
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._finalize(run_id, sync_type, started_at, results, cancelled=True)
            raise

        if cancel is not None and cancel.is_set():
            cancelled = True
        return self._finalize(run_id, sync_type, started_at, results, cancelled=cancelled)

    # -----------------------------
    # Planning
    # -----------------------------
    def _plan(
        self,
        db: Session,
        providers: list[str],
        scopes: list[Union[str, Scope]],
        *,
        force_full: bool,
        now: datetime,
    ) -> list[JobPlan]:
        plans: list[JobPlan] = []
        max_age = timedelta(hours=int(settings.sync_full_sync_max_age_hours))
        for provider in providers:
            for scope in scopes:
                plan = JobPlan(provider=provider, scope=scope)
                if not force_full:
                    self._maybe_incremental(db, plan, now=now, max_age=max_age)
                plans.append(plan)
        return plans

    def _maybe_incremental(self, db: Session, plan: JobPlan, *, now: datetime, max_age: timedelta) -> None:
        """
        Incremental only when a successful full sync of this pair is recent
        enough to keep last_seen_at fresh well inside the retention window.
        """
        last_full = sync_log.last_successful_job(
            db, provider=plan.provider, scope_key=plan.scope_key, sync_type=FULL
        )
        if last_full is None or (now - last_full.started_at) > max_age:
            return
        last_ok = sync_log.last_successful_job(db, provider=plan.provider, scope_key=plan.scope_key)
        plan.sync_type = INCREMENTAL
        plan.since = (last_ok or last_full).started_at

    # -----------------------------
    # One (provider, scope) job
    # -----------------------------
    async def _run_job(
        self,
        run_id: int,
        plan: JobPlan,
        result: JobResult,
        config: SyncConfig,
        sem: asyncio.Semaphore,
        cancel: Optional[CancelToken],
    ) -> None:
        ctx = {"run_id": run_id, "provider": plan.provider, "scope": plan.scope_key}

        def stopping() -> bool:
            return cancel is not None and cancel.is_set()

        async with sem:
            result.started_at = self.clock()
            db = self.session_factory()
            try:
                if stopping():
                    result.status = JOB_CANCELLED
                    return

                scope = plan.scope if isinstance(plan.scope, Scope) else Scope.parse(plan.scope)
                adapter = self.adapter_factory(plan.provider)

                since = plan.since
                if plan.sync_type == INCREMENTAL and not adapter.supports_since:
                    result.sync_type = FULL
                    since = None

                pagination = Pagination(
                    page_size=int(config.page_size or settings.sync_page_size),
                    max_pages=config.max_pages if config.max_pages is not None else settings.sync_max_pages,
                    max_results=config.max_results,
                    since=since,
                )
                batch_size = max(1, int(config.batch_size or settings.sync_batch_size))

                batch: list[NormalizedListing] = []
                async with aclosing(adapter.fetch(scope, pagination)) as listings:
                    async for listing in listings:
                        result.fetched += 1
                        batch.append(listing)
                        if len(batch) >= batch_size:
                            await _apply_off_loop(db, batch, stopping, result.counts)
                            batch = []
                        if stopping():
                            break

                if batch and not stopping():
                    await _apply_off_loop(db, batch, stopping, result.counts)

                if stopping():
                    result.status = JOB_CANCELLED

            except AdapterError as e:
                result.status = JOB_FAILED
                result.error_type = e.kind
                result.error = str(e)
                log.error("provider job failed: %s", e, extra=ctx)
            except (UnknownProvider, ValueError) as e:
                result.status = JOB_FAILED
                result.error_type = "config"
                result.error = str(e)
                log.error("provider job misconfigured: %s", e, extra=ctx)
            except asyncio.CancelledError:
                result.status = JOB_CANCELLED
                raise
            except Exception as e:
                result.status = JOB_FAILED
                result.error_type = type(e).__name__
                result.error = str(e)
                log.exception("provider job crashed", extra=ctx)
            finally:
                result.finished_at = self.clock()
                try:
                    db.rollback()
                    sync_log.record_job(
                        db,
                        run_id,
                        provider=result.provider,
                        scope_key=result.scope_key,
                        sync_type=result.sync_type,
                        status=result.status,
                        fetched=result.fetched,
                        counts=result.counts.as_dict(),
                        error_type=result.error_type,
                        error=result.error,
                        started_at=result.started_at,
                        finished_at=result.finished_at,
                    )
                except Exception:
                    db.rollback()
                    log.exception("could not record job result", extra=ctx)
                finally:
                    db.close()

                log.info(
                    "provider job %s: fetched=%d %s",
                    result.status,
                    result.fetched,
                    result.counts.as_dict(),
                    extra=ctx,
                )

    # -----------------------------
    # Finalize
    # -----------------------------
    def _finalize(
        self,
        run_id: int,
        sync_type: str,
        started_at: datetime,
        results: list[JobResult],
        *,
        cancelled: bool,
    ) -> SyncRunSummary:
        totals = ApplyCounts()
        for r in results:
            totals.merge(r.counts)

        status = run_status(results, cancelled=cancelled)
        error_summary = _error_summary(results, cancelled=cancelled)
        finished_at = self.clock()

        db = self.session_factory()
        try:
            sync_log.finalize_run(
                db,
                run_id,
                status=status,
                counts=totals.as_dict(),
                error_summary=error_summary,
                finished_at=finished_at,
            )
        finally:
            db.close()

        level = logging.INFO if status == "success" else logging.WARNING
        log.log(
            level,
            "sync run %s: %s",
            status,
            totals.as_dict(),
            extra={"run_id": run_id, "sync_type": sync_type},
        )

        return SyncRunSummary(
            run_id=run_id,
            status=status,
            sync_type=sync_type,
            added=totals.added,
            updated=totals.updated,
            unchanged=totals.unchanged,
            failed=totals.failed,
            started_at=started_at,
            finished_at=finished_at,
            jobs=results,
            error_summary=error_summary,
            cancelled=cancelled,
        )


async def _apply_off_loop(
    db: Session,
    batch: list[NormalizedListing],
    stopping: Callable[[], bool],
    counts: ApplyCounts,
) -> None:
    """
    Run apply_batch in a worker thread so other jobs keep paging while this
    one commits, and merge its counts into the job's.

    The job's Session belongs to the worker until the batch returns. On task
    cancellation the batch is told to stop after its current listing and is
    awaited (and counted) before CancelledError propagates.
    """
    halt = threading.Event()

    def should_stop() -> bool:
        return halt.is_set() or stopping()

    fut = asyncio.ensure_future(asyncio.to_thread(apply_batch, db, batch, should_stop=should_stop))
    try:
        counts.merge(await asyncio.shield(fut))
    except asyncio.CancelledError:
        halt.set()
        await asyncio.wait({fut})
        if not fut.cancelled() and fut.exception() is None:
            counts.merge(fut.result())
        raise


def _error_summary(results: list[JobResult], *, cancelled: bool) -> Optional[str]:
    parts: list[str] = []
    if cancelled:
        parts.append("run cancelled before completion")
    if not results:
        parts.append("no (provider, scope) jobs configured")
    for r in results:
        if r.status == JOB_FAILED:
            parts.append(f"{r.label} {r.error_type}: {r.error}")
        elif r.counts.failed:
            parts.append(f"{r.label}: {r.counts.failed} listing(s) failed to save")
    if not parts:
        return None
    if len(parts) > MAX_SUMMARY_ERRORS:
        extra = len(parts) - MAX_SUMMARY_ERRORS
        parts = parts[:MAX_SUMMARY_ERRORS] + [f"... and {extra} more"]
    return "; ".join(parts)


async def run_sync_async(
    config: Optional[SyncConfig] = None,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    adapter_factory: Callable[[str], ProviderAdapter] = get_adapter,
    cancel: Optional[CancelToken] = None,
) -> SyncRunSummary:
    orch = SyncOrchestrator(session_factory=session_factory, adapter_factory=adapter_factory)
    return await orch.run(config, cancel=cancel)


def run_sync(
    config: Optional[SyncConfig] = None,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    adapter_factory: Callable[[str], ProviderAdapter] = get_adapter,
    cancel: Optional[CancelToken] = None,
) -> SyncRunSummary:
    """Blocking entry point for CLI, Celery tasks and sync request handlers."""
    return asyncio.run(
        run_sync_async(config, session_factory=session_factory, adapter_factory=adapter_factory, cancel=cancel)
    )
