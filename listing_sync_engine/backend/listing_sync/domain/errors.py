from __future__ import annotations

from typing import Any, Optional


class SyncError(Exception):
    """Base for everything the sync core raises on purpose."""


# -----------------------------
# Adapter errors (one provider call)
# -----------------------------
class AdapterError(SyncError):
    kind = "adapter_error"

    def __init__(self, message: str, *, provider: str = "", scope: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.scope = scope
        self.status_code = status_code

    def __str__(self) -> str:
        where = f"{self.provider}:{self.scope}" if self.provider or self.scope else ""
        code = f" http={self.status_code}" if self.status_code is not None else ""
        return f"[{self.kind}] {where}{code} {self.message}".replace("  ", " ").strip()


class AdapterAuthError(AdapterError):
    kind = "auth"


class AdapterRateLimited(AdapterError):
    kind = "rate_limited"

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kw: Any):
        super().__init__(message, **kw)
        self.retry_after = retry_after


class AdapterUpstreamUnavailable(AdapterError):
    kind = "upstream_unavailable"


class AdapterMalformedResponse(AdapterError):
    kind = "malformed_response"


TRANSIENT_ADAPTER_ERRORS = (AdapterRateLimited, AdapterUpstreamUnavailable)


# -----------------------------
# Persistence / run errors
# -----------------------------
class PersistenceWriteError(SyncError):
    """One listing could not be written. Scoped to a single record."""

    def __init__(self, *, provider: str, external_id: str, cause: BaseException):
        super().__init__(f"write failed for {provider}:{external_id}: {type(cause).__name__}: {cause}")
        self.provider = provider
        self.external_id = external_id
        self.cause = cause


class PartialRunError(SyncError):
    """
    Aggregate for a run that did not fully succeed.
    Only raised by SyncRunSummary.raise_for_status(); run_sync itself never raises it.
    """

    def __init__(self, *, run_id: Optional[int], status: str, failed_jobs: list[str], failed_records: int):
        msg = f"sync run {run_id} finished {status}: failed_jobs={failed_jobs} failed_records={failed_records}"
        super().__init__(msg)
        self.run_id = run_id
        self.status = status
        self.failed_jobs = failed_jobs
        self.failed_records = failed_records


class SyncLogFinalizedError(SyncError):
    pass


class IllegalStatusTransition(SyncError):
    def __init__(self, *, actor: str, current: str, target: str):
        super().__init__(f"{actor} may not move verification_status {current!r} -> {target!r}")
        self.actor = actor
        self.current = current
        self.target = target
