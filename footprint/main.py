"""
main.py – CLI entry point for the carbon footprint engine.

Usage
-----
Create tables and seed the default factor table:
    footprint init-db
    footprint seed-factors
    footprint seed-factors --file factors.json --no-activate

Log and inspect activities:
    footprint log --user u1 --date 2024-01-02 --type transport \
        --details '{"mode": "car", "distance": 50}'
    footprint footprints --user u1 --start 2024-01-01 --end 2024-01-07
    footprint activities --user u1 --start 2024-01-01 --end 2024-01-07

Leaderboard and background jobs (cron-friendly):
    footprint leaderboard --user u1 --limit 10
    footprint reconcile
    footprint redrive --limit 500

Common options:
    --verbose   DEBUG logging (per-activity pricing lines)
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from footprint.aggregates import redrive_pending_aggregates
from footprint.config import get_config
from footprint.constants import (
    ALLOWED_CATEGORIES,
    DEFAULT_LEADERBOARD_LIMIT,
    MAX_REDRIVE_BATCH_SIZE,
    REDRIVE_GRACE_SECONDS,
)
from footprint.db import apply_schema, fetch_activity_logs, get_connection
from footprint.emission_factors import (
    DEFAULT_EMISSION_FACTORS,
    EmissionFactorTable,
    load_active_table,
    store_factor_table,
)
from footprint.errors import FootprintError
from footprint.leaderboard import reconcile_leaderboard
from footprint.service import get_footprint_summary, get_leaderboard, log_activity
from footprint.validators import validate_date_range, validate_limit

console = Console()

_BUCKET_STYLE = {"low": "green", "medium": "yellow", "high": "red"}


# ─────────────────────────────────────────────────────────────
# Subcommand handlers
# ─────────────────────────────────────────────────────────────

def _cmd_init_db(args, cfg) -> int:
    ok, err = apply_schema(cfg.database_url)
    if not ok:
        console.print(f"[red]Schema not applied:[/red] {err}")
        return 1
    console.print("[green]Schema applied.[/green]")
    return 0


def _cmd_seed_factors(args, cfg) -> int:
    if args.file:
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
    else:
        data = DEFAULT_EMISSION_FACTORS
    table = EmissionFactorTable.from_mapping(data)

    conn = get_connection(cfg.database_url)
    try:
        version = store_factor_table(conn, table, activate=not args.no_activate)
    finally:
        conn.close()
    state = "inactive" if args.no_activate else "active"
    console.print(f"[green]Stored emission factor version {version} ({state}).[/green]")
    return 0


def _cmd_factors(args, cfg) -> int:
    conn = get_connection(cfg.database_url)
    try:
        table = load_active_table(conn)
    finally:
        conn.close()

    t = Table(title=f"Emission factors – version {table.version}")
    t.add_column("Category")
    t.add_column("Subtype")
    t.add_column("kg CO₂e / unit", justify="right")
    for category in ALLOWED_CATEGORIES:
        for subtype, factor in sorted(table.category_map(category).items()):
            t.add_row(category, subtype, f"{factor:.4f}")
    console.print(t)
    return 0


def _cmd_log(args, cfg) -> int:
    payload: dict[str, Any] = {
        "date": args.date,
        "activityType": args.type,
        "details": json.loads(args.details),
    }
    if args.trip:
        payload["tripId"] = args.trip

    conn = get_connection(cfg.database_url)
    try:
        result = log_activity(conn, args.user, payload)
    finally:
        conn.close()

    status = "aggregated" if result.aggregated else "[yellow]aggregates pending[/yellow]"
    console.print(
        Panel(
            f"activity_id: {result.activity_id}\n"
            f"carbon: {result.carbon_footprint:.4f} kg CO₂e\n"
            f"factor version: {result.factor_version}\n"
            f"status: {status}",
            title="Activity logged",
        )
    )
    return 0


def _cmd_footprints(args, cfg) -> int:
    conn = get_connection(cfg.database_url)
    try:
        payload = get_footprint_summary(conn, args.user, args.start, args.end)
    finally:
        conn.close()

    t = Table(title=f"Daily footprint – {args.user} ({payload['startDate']} → {payload['endDate']})")
    t.add_column("Date")
    t.add_column("kg CO₂e", justify="right")
    t.add_column("Level")
    for day, cell in payload["calendar"].items():
        style = _BUCKET_STYLE.get(cell["bucket"], "")
        t.add_row(day, f"{cell['value']:.2f}", f"[{style}]{cell['bucket']}[/{style}]")
    console.print(t)

    summary = payload["summary"]
    average = f"{summary['average']:.2f} kg" if summary["average"] is not None else "N/A"
    console.print(
        f"Total: {summary['total']:.2f} kg CO₂e | "
        f"Average per logged day: {average} | Days logged: {summary['daysLogged']}"
    )
    return 0


def _cmd_activities(args, cfg) -> int:
    start, end = validate_date_range(args.start, args.end)
    conn = get_connection(cfg.database_url)
    try:
        rows = fetch_activity_logs(conn, args.user, start, end)
    finally:
        conn.close()

    t = Table(title=f"Activities – {args.user}")
    t.add_column("ID", justify="right")
    t.add_column("Date")
    t.add_column("Type")
    t.add_column("Details")
    t.add_column("kg CO₂e", justify="right")
    t.add_column("Trip")
    t.add_column("Aggregated")
    for r in rows:
        t.add_row(
            str(r["activity_id"]),
            r["activity_date"].isoformat(),
            r["category"],
            json.dumps(r["details"]),
            f"{r['carbon_footprint']:.4f}",
            r.get("trip_id") or "",
            "yes" if r.get("aggregated_at") else "[yellow]pending[/yellow]",
        )
    console.print(t)
    return 0


def _cmd_leaderboard(args, cfg) -> int:
    conn = get_connection(cfg.database_url)
    try:
        result = get_leaderboard(conn, args.user or "", args.limit)
    finally:
        conn.close()

    t = Table(title="Leaderboard")
    t.add_column("#", justify="right")
    t.add_column("User")
    t.add_column("Points", justify="right")
    for pos, entry in enumerate(result.leaderboard, start=1):
        name = entry.username or entry.user_id
        if entry.user_id == args.user:
            name = f"[bold]{name}[/bold]"
        t.add_row(str(pos), name, str(entry.total_reward_points))
    console.print(t)
    if args.user:
        rank = result.user_rank if result.user_rank is not None else "unranked"
        console.print(f"Rank of {args.user}: {rank}")
    return 0


def _cmd_reconcile(args, cfg) -> int:
    conn = get_connection(cfg.database_url)
    try:
        written = reconcile_leaderboard(conn)
    finally:
        conn.close()
    console.print(f"[green]Leaderboard reconciled – {written} entries written.[/green]")
    return 0


def _cmd_redrive(args, cfg) -> int:
    size = validate_limit(
        args.limit, default=cfg.redrive_batch_size, maximum=MAX_REDRIVE_BATCH_SIZE
    )
    conn = get_connection(cfg.database_url)
    try:
        summary = redrive_pending_aggregates(
            conn, limit=size, grace_seconds=args.grace
        )
    finally:
        conn.close()
    console.print(
        f"Pending: {summary.pending}  Applied: {summary.applied}  "
        f"Skipped: {summary.skipped}  Failed: {len(summary.failed)}"
    )
    if summary.failed:
        console.print(f"[red]Failed activity ids:[/red] {summary.failed}")
        return 1
    return 0


# ─────────────────────────────────────────────────────────────
# Argument parsing
# ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="footprint", description="Travel carbon footprint engine."
    )
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and indexes").set_defaults(func=_cmd_init_db)

    p = sub.add_parser("seed-factors", help="Store a new emission factor version")
    p.add_argument("--file", help="JSON file {transport: {...}, food: {...}, accommodation: {...}}")
    p.add_argument("--no-activate", action="store_true", help="Store without activating")
    p.set_defaults(func=_cmd_seed_factors)

    sub.add_parser("factors", help="Show the active emission factors").set_defaults(func=_cmd_factors)

    p = sub.add_parser("log", help="Log one activity")
    p.add_argument("--user", required=True)
    p.add_argument("--date", required=True)
    p.add_argument("--type", required=True, choices=ALLOWED_CATEGORIES)
    p.add_argument("--details", required=True, help="JSON detail payload")
    p.add_argument("--trip", help="Associated trip id")
    p.set_defaults(func=_cmd_log)

    p = sub.add_parser("footprints", help="Daily footprints with summary")
    p.add_argument("--user", required=True)
    p.add_argument("--start", help="YYYY-MM-DD (default: 7 days ago)")
    p.add_argument("--end", help="YYYY-MM-DD (default: today)")
    p.set_defaults(func=_cmd_footprints)

    p = sub.add_parser("activities", help="Raw activity log for a range")
    p.add_argument("--user", required=True)
    p.add_argument("--start", required=True)
    p.add_argument("--end", required=True)
    p.set_defaults(func=_cmd_activities)

    p = sub.add_parser("leaderboard", help="Top users by reward points")
    p.add_argument("--user", help="Also show this user's rank")
    p.add_argument("--limit", type=int, default=DEFAULT_LEADERBOARD_LIMIT)
    p.set_defaults(func=_cmd_leaderboard)

    sub.add_parser("reconcile", help="Rebuild the leaderboard projection").set_defaults(
        func=_cmd_reconcile
    )

    p = sub.add_parser("redrive", help="Apply aggregates of pending activities")
    p.add_argument("--limit", type=int)
    p.add_argument("--grace", type=float, default=REDRIVE_GRACE_SECONDS,
                   help="Skip activities younger than this many seconds")
    p.set_defaults(func=_cmd_redrive)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = get_config()
    except EnvironmentError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else cfg.log_level,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        return args.func(args, cfg)
    except (FootprintError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
