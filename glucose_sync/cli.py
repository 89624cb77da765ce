"""
Interactive command line: add readings, sync on demand and inspect the local store.

Usage:
    glucose-sync-cli --add 7.2                 # store a reading and try to submit it
    glucose-sync-cli --add 130 --unit mg/dL --tags Fasting,Morning
    glucose-sync-cli --sync                    # push pending readings, then pull
    glucose-sync-cli --push | --pull
    glucose-sync-cli --list                    # readings for OWNER_NAME, newest first
    glucose-sync-cli --delete <id> | --clear   # local only
    glucose-sync-cli --status                  # counts, credential and sync log
    glucose-sync-cli --stats 7d
    glucose-sync-cli --export csv readings.csv
    glucose-sync-cli --logout
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime

from .config import ConfigError, load_config
from .main import Components, build_components
from .notify.alerts import AlertNotifier, Severity
from .scheduler.jobs import full_sync
from .sync.engine import SyncResult
from .sync.errors import LocalStorageError
from .sync.models import PREDEFINED_TAGS, GlucoseUnit, Reading
from .utils.export import export_csv, export_json
from .utils.logger import setup_logging
from .utils.statistics import TimeRange, calculate_statistics, filter_by_time_range

_RANGES = {
    "24h": TimeRange.DAY_1,
    "7d": TimeRange.DAYS_7,
    "30d": TimeRange.DAYS_30,
    "90d": TimeRange.DAYS_90,
    "1y": TimeRange.YEAR_1,
}


def _fmt_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def _fmt_reading(r: Reading) -> str:
    state = "synced " if r.synced else "pending"
    line = f"  [{state}] {_fmt_time(r.timestamp)}  {r.value:g} {r.units}  ({r.source})  {r.id}"
    if r.snack_pass:
        line += "  snack-pass"
    if r.tags:
        line += f"  #{' #'.join(r.tags_list())}"
    if r.comment:
        line += f"  \"{r.comment}\""
    return line


def _report_failure(result: SyncResult) -> int:
    print(f"❌ {result.error.user_message}")
    return 1


def cmd_add(args: argparse.Namespace, components: Components, config, notifier: AlertNotifier) -> int:
    tags = [t for t in (args.tags or "").split(",") if t.strip()]
    unknown = [t for t in tags if t.strip() not in PREDEFINED_TAGS]
    if unknown:
        print(f"ℹ️ Custom tags: {', '.join(unknown)}")

    try:
        reading = components.engine.add_reading(
            args.add,
            owner_name=config.owner_name,
            unit=args.unit or config.default_unit,
            comment=args.comment,
            snack_pass=args.snack_pass,
            source=args.source,
            tags=tags,
            photo_uri=args.photo,
        )
    except ValueError as exc:
        print(f"❌ Invalid reading: {exc}")
        return 1
    if reading.synced:
        print(f"✅ Reading {reading.id} saved and sent to the server.")
    else:
        print(f"💾 Reading {reading.id} saved locally; it will be sent on the next sync.")

    severity = notifier.check_and_notify(reading, config.glucose_alerts)
    if severity in (Severity.CRITICAL_HIGH, Severity.CRITICAL_LOW):
        print(f"⚠️ Critical reading ({severity.value.replace('_', ' ')}).")
    return 0


def cmd_sync(components: Components, owner_name: str) -> int:
    print("▶ Syncing with the server...")
    result = full_sync(components.engine, owner_name)
    if not result.ok:
        return _report_failure(result)
    pushed, pulled = result.value
    print(f"✅ Sync complete: {pushed} pushed, {pulled} pulled.")
    return 0


def cmd_push(components: Components) -> int:
    result = components.engine.sync_unsynced_readings()
    if not result.ok:
        return _report_failure(result)
    print(f"✅ {result.value} pending reading(s) sent.")
    return 0


def cmd_pull(components: Components, owner_name: str) -> int:
    result = components.engine.sync_readings_from_server(owner_name)
    if not result.ok:
        return _report_failure(result)
    print(f"✅ {len(result.value)} reading(s) pulled from the server.")
    return 0


def cmd_list(components: Components, owner_name: str) -> int:
    readings = components.repo.readings_by_owner(owner_name)
    if not readings:
        print(f"No readings stored for {owner_name}.")
        return 0
    print(f"\n📋 {len(readings)} reading(s) for {owner_name}:")
    for r in readings:
        print(_fmt_reading(r))
    return 0


def cmd_delete(components: Components, reading_id: str) -> int:
    reading = components.repo.get_reading(reading_id)
    if reading is None:
        print(f"❌ No reading with id {reading_id}.")
        return 1
    components.engine.delete_reading(reading)
    print(f"🗑️ Reading {reading_id} deleted locally.")
    return 0


def cmd_clear(components: Components) -> int:
    count = components.repo.count_readings()
    components.engine.clear_all_readings()
    print(f"🗑️ {count} local reading(s) deleted.")
    return 0


def cmd_status(components: Components) -> int:
    repo, credentials = components.repo, components.credentials
    last = repo.get_last_successful_sync()
    logs = repo.get_recent_sync_logs(5)

    print(f"\n📊 Readings stored: {repo.count_readings()} ({repo.count_unsynced()} pending)")
    if credentials.is_valid():
        print(f"🔑 Credential valid until {_fmt_time(credentials.expiry)}")
    else:
        print("🔑 No valid credential (will authenticate on next sync)")
    print(f"🕐 Last successful sync: {last.sync_date if last else 'Never'}")
    if logs:
        print("\n📋 Last 5 sync logs:")
        for log in logs:
            print(f"  [{log.status}] {log.sync_date}  attempts={log.attempts}  {log.error_message or ''}")
    return 0


def cmd_stats(components: Components, owner_name: str, range_key: str) -> int:
    time_range = _RANGES[range_key]
    readings = filter_by_time_range(components.repo.readings_by_owner(owner_name), time_range)
    stats = calculate_statistics(readings)
    if stats is None:
        print(f"No readings in the last {time_range.label}.")
        return 0
    tir = stats.time_in_range
    print(f"\n📈 Statistics, last {time_range.label} ({stats.count} readings, mmol/L)")
    print(f"  Average:  {stats.average:.1f}   (min {stats.minimum:.1f}, max {stats.maximum:.1f})")
    print(f"  Std dev:  {stats.standard_deviation:.1f}   CV {stats.coefficient_of_variation:.0f}%")
    print(f"  Est. A1C: {stats.estimated_a1c:.1f}%")
    print(
        f"  Time in range: {tir.percent('in_range'):.0f}%  "
        f"(very low {tir.percent('very_low'):.0f}%, low {tir.percent('low'):.0f}%, "
        f"high {tir.percent('high'):.0f}%, very high {tir.percent('very_high'):.0f}%)"
    )
    return 0


def cmd_export(components: Components, owner_name: str, fmt: str, path: str) -> int:
    readings = components.repo.readings_by_owner(owner_name)
    dest = export_csv(readings, path) if fmt == "csv" else export_json(readings, path)
    print(f"✅ {len(readings)} reading(s) exported to {dest}")
    return 0


def cmd_logout(components: Components) -> int:
    components.engine.sign_out()
    print("🔒 Stored credential removed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glucose-sync-cli",
        description="Glucose readings: local store and Kulus sync",
    )
    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--add", type=float, metavar="VALUE", help="Store a new reading")
    actions.add_argument("--sync", action="store_true", help="Push pending readings, then pull")
    actions.add_argument("--push", action="store_true", help="Push pending readings only")
    actions.add_argument("--pull", action="store_true", help="Pull remote readings only")
    actions.add_argument("--list", action="store_true", help="List stored readings")
    actions.add_argument("--delete", metavar="ID", help="Delete one reading locally")
    actions.add_argument("--clear", action="store_true", help="Delete all local readings")
    actions.add_argument("--status", action="store_true", help="Show store and sync status")
    actions.add_argument("--stats", choices=sorted(_RANGES), metavar="RANGE",
                         help=f"Show statistics ({', '.join(_RANGES)})")
    actions.add_argument("--export", nargs=2, metavar=("FORMAT", "PATH"), help="Export to csv or json")
    actions.add_argument("--logout", action="store_true", help="Remove the stored credential")

    add = parser.add_argument_group("options for --add")
    add.add_argument("--unit", choices=[u.value for u in GlucoseUnit], help="Unit (default: DEFAULT_UNIT)")
    add.add_argument("--comment")
    add.add_argument("--snack-pass", action="store_true", help="Suppress glucose alerts for this reading")
    add.add_argument("--source", default="android")
    add.add_argument("--tags", help=f"Comma separated, e.g. {','.join(PREDEFINED_TAGS[:3])}")
    add.add_argument("--photo", metavar="URI", help="Local photo reference")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.export and args.export[0] not in ("csv", "json"):
        parser.error("--export FORMAT must be csv or json")

    try:
        config = load_config()
    except ConfigError as exc:
        print(f"❌ Config error: {exc}")
        return 1

    setup_logging(config.log_level, config.log_file, console=False)
    notifier = AlertNotifier(config.telegram_bot_token, config.telegram_chat_id)
    components = build_components(config)
    owner = config.owner_name

    try:
        if args.add is not None:
            return cmd_add(args, components, config, notifier)
        if args.sync:
            return cmd_sync(components, owner)
        if args.push:
            return cmd_push(components)
        if args.pull:
            return cmd_pull(components, owner)
        if args.list:
            return cmd_list(components, owner)
        if args.delete:
            return cmd_delete(components, args.delete)
        if args.clear:
            return cmd_clear(components)
        if args.status:
            return cmd_status(components)
        if args.stats:
            return cmd_stats(components, owner, args.stats)
        if args.export:
            return cmd_export(components, owner, *args.export)
        return cmd_logout(components)
    except LocalStorageError as exc:
        print(f"❌ Local storage error: {exc}")
        return 1
    finally:
        components.repo.dispose()


if __name__ == "__main__":
    sys.exit(main())
