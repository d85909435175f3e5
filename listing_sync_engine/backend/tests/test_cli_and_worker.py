# backend/tests/test_cli_and_worker.py
from __future__ import annotations

import importlib
import json
from datetime import datetime, timedelta

from listing_sync.config import settings
from listing_sync.services import sync_orchestrator
from listing_sync.services.reconcile import apply_batch
from listing_sync.workers import sync_tasks
from listing_sync.workers.celery_app import celery_app

from conftest import FakeAdapter, adapter_factory, make_listing

cli = importlib.import_module("listing_sync.cli.__main__")

SCOPE = "Orlando,FL,32801"


def _patch_sync(monkeypatch, session_factory, *adapters):
    real = sync_orchestrator.run_sync

    def fake_run_sync(config=None, **kw):
        return real(config, session_factory=session_factory, adapter_factory=adapter_factory(*adapters))

    monkeypatch.setattr(sync_tasks, "run_sync", fake_run_sync)
    monkeypatch.setattr(sync_tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "run_sync", lambda config=None, **kw: fake_run_sync(config))
    monkeypatch.setattr(cli, "SessionLocal", session_factory)


def test_beat_runs_daily_sync_at_configured_hour():
    entry = celery_app.conf.beat_schedule["daily-listing-sync"]

    assert entry["task"] == "listing_sync.workers.sync_tasks.sync_listings"
    assert entry["kwargs"] == {"sweep_after": True}
    assert entry["schedule"].hour == {settings.sync_schedule_hour}
    assert entry["schedule"].minute == {0}


def test_sync_task_runs_then_sweeps(monkeypatch, session_factory):
    db = session_factory()
    try:
        apply_batch(db, [make_listing(99)], now=datetime.utcnow() - timedelta(days=30))
    finally:
        db.close()
    _patch_sync(monkeypatch, session_factory, FakeAdapter("simplyrets", [make_listing(1)]))

    out = sync_tasks.sync_listings.apply(
        kwargs={"providers": ["simplyrets"], "scopes": [SCOPE], "sweep_after": True}
    ).get()

    assert out["ok"] is True
    assert out["sync"]["status"] == "success"
    assert out["sweep"]["transitioned"] == 1


def test_sync_task_skips_sweep_when_run_failed(monkeypatch, session_factory):
    from listing_sync.domain.errors import AdapterAuthError

    _patch_sync(
        monkeypatch,
        session_factory,
        FakeAdapter("simplyrets", error=AdapterAuthError("no", provider="simplyrets")),
    )

    out = sync_tasks.sync_listings.apply(
        kwargs={"providers": ["simplyrets"], "scopes": [SCOPE], "sweep_after": True}
    ).get()

    assert out["ok"] is False
    assert out["sweep"] is None


def test_cli_sync_status_history_sweep(monkeypatch, session_factory, capsys):
    _patch_sync(monkeypatch, session_factory, FakeAdapter("simplyrets", [make_listing(1), make_listing(2)]))

    assert cli.main(["sync", "--provider", "simplyrets", "--scope", SCOPE]) == 0
    ran = json.loads(capsys.readouterr().out)
    assert ran["added"] == 2

    assert cli.main(["status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["last_run"]["id"] == ran["run_id"]

    assert cli.main(["history", "--limit", "5"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 1

    assert cli.main(["sweep", "--dry-run"]) == 0
    swept = json.loads(capsys.readouterr().out)
    assert swept["dry_run"] is True
    assert swept["transitioned"] == 0
