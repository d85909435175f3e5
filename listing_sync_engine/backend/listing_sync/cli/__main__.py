# backend/listing_sync/cli/__main__.py
from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from datetime import timedelta

from listing_sync.clients.registry import provider_names
from listing_sync.db import SessionLocal, init_db
from listing_sync.logging_config import configure_logging
from listing_sync.services import sync_log
from listing_sync.services.image_audit import audit_images
from listing_sync.services.sweeper import sweep
from listing_sync.services.sync_orchestrator import SyncConfig, run_sync


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


def _cmd_sync(args) -> int:
    cancel = threading.Event()
    # first Ctrl-C stops cleanly (current listing finishes, run log is written)
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        summary = run_sync(
            SyncConfig(
                providers=args.provider or None,
                scopes=args.scope or None,
                force_full_sync=args.full,
                max_pages=args.max_pages,
                max_results=args.max_results,
            ),
            cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous)
    _print(summary.as_dict())
    return 0 if summary.status == "success" else (1 if summary.status == "partial" else 2)


def _cmd_sweep(args) -> int:
    db = SessionLocal()
    try:
        window = timedelta(days=args.days) if args.days else None
        res = sweep(db, window, dry_run=args.dry_run, sample_size=args.sample)
        _print(res.as_dict())
    finally:
        db.close()
    return 0


def _cmd_status(args) -> int:
    db = SessionLocal()
    try:
        run = sync_log.get_last_sync_status(db)
        if run is None:
            _print({"last_run": None})
            return 1
        _print({"last_run": sync_log.run_to_dict(run)})
    finally:
        db.close()
    return 0


def _cmd_history(args) -> int:
    db = SessionLocal()
    try:
        _print([sync_log.run_to_dict(r) for r in sync_log.get_sync_history(db, limit=args.limit)])
    finally:
        db.close()
    return 0


def _cmd_images(args) -> int:
    db = SessionLocal()
    try:
        res = audit_images(db, min_shared=args.min_shared, sample_size=args.sample, repair=args.repair)
        _print(res.as_dict())
    finally:
        db.close()
    # drift left behind is a failure for cron/monitoring callers
    return 1 if res.drifted > res.repaired else 0


def _cmd_init_db(args) -> int:
    init_db()
    _print({"ok": True})
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="python -m listing_sync.cli")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("sync", help="fetch from providers and reconcile into the store")
    s.add_argument("--provider", action="append", choices=provider_names(), help="repeatable; default from settings")
    s.add_argument("--scope", action="append", help='repeatable, "City,ST,ZIP"; default from settings')
    s.add_argument("--full", action="store_true", help="ignore incremental eligibility")
    s.add_argument("--max-pages", type=int, default=None)
    s.add_argument("--max-results", type=int, default=None)
    s.set_defaults(func=_cmd_sync)

    w = sub.add_parser("sweep", help="retire listings not seen within the retention window")
    w.add_argument("--days", type=int, default=None)
    w.add_argument("--dry-run", action="store_true")
    w.add_argument("--sample", type=int, default=None)
    w.set_defaults(func=_cmd_sweep)

    st = sub.add_parser("status", help="last finished sync run")
    st.set_defaults(func=_cmd_status)

    h = sub.add_parser("history", help="recent sync runs, newest first")
    h.add_argument("--limit", type=int, default=20)
    h.set_defaults(func=_cmd_history)

    im = sub.add_parser("images", help="image integrity: missing galleries, primary-image drift, shared urls")
    im.add_argument("--repair", action="store_true", help="rewrite drifted primary images from the gallery")
    im.add_argument("--min-shared", type=int, default=2)
    im.add_argument("--sample", type=int, default=None)
    im.set_defaults(func=_cmd_images)

    i = sub.add_parser("init-db", help="create tables (dev/local; use alembic elsewhere)")
    i.set_defaults(func=_cmd_init_db)
    return p


def main(argv: list[str] | None = None) -> int:
    # stdout carries the JSON result
    configure_logging(sys.stderr)
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
