# src/parcel_pulse/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config.env import EnvError, get_app_env
from .config.logging_config import get_logger, mask_secret
from .io.paths import derive_store_paths
from .io.storage import JsonFileStore
from .models import EnvCfg, PollUpdate

NOTIFICATION_KEYS = ("status_change", "delivered", "nearby", "few_stops")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="parcel-pulse",
        description="Live parcel tracking through an already signed-in carrier session.",
    )
    p.add_argument("--no-console", action="store_true",
                   help="Disable console logging (file logging remains).")
    p.add_argument("--log-level", default=None,
                   help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: LOG_LEVEL or INFO")
    p.add_argument("--log-file", type=Path, default=None,
                   help="Log file path. Default: next to the store.")
    p.add_argument("--strict-env", action="store_true",
                   help="Require PARCEL_PULSE_COOKIE_FILE to be set; otherwise exit 2.")

    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("track", help="Poll one or more tracking IDs.")
    t.add_argument("tracking_ids", nargs="+", help="Tracking IDs (the first one is shown).")
    t.add_argument("--domain", default=None, help="Carrier domain, e.g. www.amazon.it")
    t.add_argument("--interval", type=float, default=None, help="Seconds between polls.")
    t.add_argument("--once", action="store_true", help="Fetch once and exit.")

    sub.add_parser("sessions", help="List stored sessions.")

    f = sub.add_parser("forget", help="Remove the stored session of a domain.")
    f.add_argument("domain")

    sub.add_parser("clear", help="Remove all stored sessions.")

    c = sub.add_parser("capture", help="Store a token taken from a signed-in page.")
    c.add_argument("--domain", required=True)
    c.add_argument("--token", required=True)
    c.add_argument("--source-url", default="")

    r = sub.add_parser("refresh", help="Refresh cookies and re-derive the token of a domain.")
    r.add_argument("domain")

    d = sub.add_parser("detect", help="Find tracking IDs in a saved tracking page.")
    d.add_argument("html", type=Path)
    d.add_argument("--domain", required=True)
    d.add_argument("--url", default=None, help="Page URL (its trackingId parameter counts too).")

    sub.add_parser("import", help="Consume the pending import, if any.")

    s = sub.add_parser("settings", help="Show or change notification settings.")
    s.add_argument("--nearby-km", type=float, default=None)
    s.add_argument("--few-stops", type=int, default=None)
    s.add_argument("--enable", action="append", choices=NOTIFICATION_KEYS, default=[])
    s.add_argument("--disable", action="append", choices=NOTIFICATION_KEYS, default=[])
    return p


@dataclass
class Services:
    env: EnvCfg
    store: JsonFileStore
    logger: logging.Logger

    def sessions(self):
        from .io.session_store import SessionStore
        return SessionStore(
            self.store, on_change=lambda n: self.logger.debug("Stored sessions: %d", n))

    def transport(self, max_retries: int = 0):
        from .api.transport import RequestsTransport
        return RequestsTransport(timeout=self.env.HTTP_TIMEOUT, max_retries=max_retries)

    def cookies(self):
        from .api.cookies import NetscapeCookieFile, StaticCookies
        if self.env.COOKIE_FILE is None:
            self.logger.warning("PARCEL_PULSE_COOKIE_FILE is not set; no cookies available.")
            return StaticCookies()
        return NetscapeCookieFile(self.env.COOKIE_FILE)

    def refresher(self, sessions=None):
        from .api.credentials import CredentialRefresher, SessionContextProvider
        sessions = sessions or self.sessions()
        cookies = self.cookies()
        transport = self.transport(max_retries=1)
        return CredentialRefresher(
            sessions, cookies,
            SessionContextProvider(sessions, cookies, transport),
            transport=transport,
        )


def _fmt_ms(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _print_update(update: PollUpdate) -> None:
    from .rules.notifier import format_distance, render_notification
    from .rules.status_mapper import status_label

    stamp = datetime.now().strftime("%H:%M:%S")
    if update.error:
        print(f"[{stamp}] {update.tracking_id}: {update.error}")
        return
    rec = update.record
    parts = [f"[{stamp}] {rec.tracking_id}: {status_label(rec.status)}"]
    dist = rec.effective_distance_km
    if dist is not None:
        parts.append(format_distance(dist))
    if rec.route_duration_min is not None:
        parts.append(f"~{rec.route_duration_min} min")
    if rec.stops_remaining is not None:
        parts.append(f"{rec.stops_remaining} stops")
    if rec.reason:
        parts.append(rec.reason)
    print(" | ".join(parts))
    for n in update.notifications:
        title, message = render_notification(n)
        print(f"  >> {title} {message}")


def _cmd_track(args, svc: Services) -> int:
    from .api.routing import OsrmRouter
    from .api.tracking import TrackingClient
    from .pipelines.enricher import DistanceEnricher
    from .pipelines.poller import Poller
    from .rules.notifier import ChangeDetector, load_notification_settings

    sessions = svc.sessions()
    refresher = svc.refresher(sessions)
    client = TrackingClient(
        refresher, sessions, svc.transport(),
        default_domain=svc.env.DEFAULT_DOMAIN,
    )
    router = OsrmRouter(svc.env.OSRM_URL, svc.transport(max_retries=1))
    poller = Poller(
        args.tracking_ids,
        client=client,
        detector=ChangeDetector(lambda: load_notification_settings(svc.store)),
        enricher=DistanceEnricher(router),
        on_update=_print_update,
        on_countdown=lambda s: svc.logger.debug("Refreshing in %ss", s),
        interval=args.interval or svc.env.POLL_INTERVAL,
        domain=args.domain,
    )

    try:
        if args.once:
            update = poller.run_cycle()
            return 0 if update is not None and update.ok else 1

        poller.start()
        try:
            while poller.is_running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
        finally:
            poller.stop()
            poller.join(5)
        return 0
    finally:
        for transport in (client.transport, router.transport, refresher.transport):
            transport.close()


def _cmd_sessions(args, svc: Services) -> int:
    records = svc.sessions().get_all()
    if not records:
        print("No sessions stored.")
        return 0
    for domain, rec in sorted(records.items()):
        print(f"{domain}\ttoken={mask_secret(rec.anti_forgery_token)}\t"
              f"captured={_fmt_ms(rec.captured_at)}\tupdated={_fmt_ms(rec.updated_at)}")
    return 0


def _cmd_capture(args, svc: Services) -> int:
    record = svc.refresher().capture(args.domain, args.token, args.source_url)
    if record is None:
        print(f"error: no cookies found for {args.domain}", file=sys.stderr)
        return 1
    print(f"Connected to {record.domain}")
    return 0


def _cmd_refresh(args, svc: Services) -> int:
    record = svc.refresher().force_refresh(args.domain)
    if record is None:
        print(f"error: could not refresh {args.domain}", file=sys.stderr)
        return 1
    print(f"{record.domain}: token={mask_secret(record.anti_forgery_token)} updated={_fmt_ms(record.updated_at)}")
    return 0


def _cmd_detect(args, svc: Services) -> int:
    from .api.page import extract_tracking_ids
    from .io.imports import PendingImportStore, TrackingIdRegistry

    try:
        html = args.html.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"error: cannot read {args.html}: {e}", file=sys.stderr)
        return 2
    ids = extract_tracking_ids(html, args.url)
    if not ids:
        print("No tracking IDs found.")
        return 1
    TrackingIdRegistry(svc.store).record(ids, args.domain, args.url)
    PendingImportStore(svc.store).offer(ids, args.domain)
    for tid in ids:
        print(tid)
    return 0


def _cmd_import(args, svc: Services) -> int:
    from .io.imports import PendingImportStore

    pending = PendingImportStore(svc.store).take()
    if pending is None:
        print("Nothing to import.")
        return 0
    print(json.dumps(pending.to_dict(), indent=2))
    return 0


def _cmd_settings(args, svc: Services) -> int:
    from .rules.notifier import load_notification_settings, save_notification_settings

    settings = load_notification_settings(svc.store)
    changes = {k: True for k in args.enable}
    changes.update({k: False for k in args.disable})
    if args.nearby_km is not None:
        changes["nearby_km"] = args.nearby_km
    if args.few_stops is not None:
        changes["few_stops_count"] = args.few_stops
    if changes:
        settings = save_notification_settings(svc.store, replace(settings, **changes))
    print(json.dumps(settings.to_dict(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        env_cfg = get_app_env(strict=args.strict_env)
    except EnvError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    store_path, default_log = derive_store_paths(env_cfg.STORE_PATH)
    logger = get_logger(
        "parcel_pulse",
        level=args.log_level,
        console=not args.no_console,
        log_file=args.log_file or default_log,
    )
    logger.debug("Store: %s", store_path)

    svc = Services(env=env_cfg, store=JsonFileStore(store_path), logger=logger)

    if args.command == "forget":
        svc.sessions().delete(args.domain)
        return 0
    if args.command == "clear":
        svc.sessions().clear()
        return 0

    handlers = {
        "track": _cmd_track,
        "sessions": _cmd_sessions,
        "capture": _cmd_capture,
        "refresh": _cmd_refresh,
        "detect": _cmd_detect,
        "import": _cmd_import,
        "settings": _cmd_settings,
    }
    try:
        return handlers[args.command](args, svc)
    except Exception as e:
        logger.exception("Command %s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
