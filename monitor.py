#!/usr/bin/env python3
"""
Headless grow room monitor.

Runs the telemetry engine without the HTTP surface and logs one line per
refresh: current readings, actuator states, control mode and new alerts.

Usage:
    python monitor.py                                  # simulated data
    python monitor.py --database-url https://<db>.firebaseio.com
    python monitor.py --database-url ... --prune-now   # one retention cycle, then exit
    python monitor.py --export datos.json              # write the history on exit
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from mycosync.core.config import settings
from mycosync.domain.alerts import AlertEngine
from mycosync.domain.models import Channel
from mycosync.drivers.firebase_store import FirebaseStore
from mycosync.services.engine import TelemetryEngine
from mycosync.services.retention import HistoryRetentionJob

log = logging.getLogger("monitor")


# ---------------------------------------------------------------------------
# Refresh line
# ---------------------------------------------------------------------------

class RefreshPrinter:
    def __init__(self, engine: TelemetryEngine) -> None:
        self._engine = engine
        self._seen_alerts: set[tuple] = set()

    def __call__(self) -> None:
        e = self._engine
        readings = "  ".join(
            f"{ch.value}={e.alerts.ranges[ch].format(e.latest(ch).value)} ({e.status(ch)})"
            for ch in Channel
        )
        on = [name for name, value in e.actuators().items() if value] or ["none"]
        log.info("%s  | on: %s | mode=%s", readings, ",".join(on), e.authority.mode.value)

        active = e.active_alerts()
        for alert in active:
            key = (alert.created_at, alert.message)
            if key not in self._seen_alerts:
                log.info("  ! [%s] %s", alert.severity.value, alert.message)
        # Only alerts still in the backlog can show up again.
        self._seen_alerts = {(a.created_at, a.message) for a in active}


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

async def prune_once(database_url: str) -> None:
    store = FirebaseStore(database_url, timeout=settings.request_timeout_seconds)
    job = HistoryRetentionJob(
        store, AlertEngine(),
        interval_s=settings.history_interval_seconds,
        max_records=settings.history_max_records,
    )
    try:
        result = await job.run_once()
        log.info("Retention cycle: saved=%s pruned=%d", result.saved, result.pruned)
    finally:
        await store.close()


async def run(database_url: Optional[str], export_path: Optional[Path]) -> None:
    store = FirebaseStore(database_url, timeout=settings.request_timeout_seconds) if database_url else None
    engine = TelemetryEngine(store=store)
    engine.add_listener(RefreshPrinter(engine))

    await engine.start()
    log.info("Monitoring (source=%s). Ctrl+C to stop.", engine.state.source_kind)
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()
        if store is not None:
            await store.close()
        if export_path is not None:
            export_path.write_text(json.dumps(engine.export(), indent=2))
            log.info("History written to %s", export_path)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    p = argparse.ArgumentParser(description="Headless grow room telemetry monitor")

    p.add_argument("--database-url", default=settings.firebase_database_url or None,
                   help="Firebase Realtime Database URL (omit for simulated data)")
    p.add_argument("--export", type=Path, default=None, help="Write history JSON here on exit")
    p.add_argument("--prune-now", action="store_true",
                   help="Run one history save/cleanup cycle and exit")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        if args.prune_now:
            if not args.database_url:
                p.error("--prune-now needs --database-url")
            asyncio.run(prune_once(args.database_url))
        else:
            asyncio.run(run(args.database_url, args.export))
    except KeyboardInterrupt:
        log.info("Shutting down")


if __name__ == "__main__":
    main()
