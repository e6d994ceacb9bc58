import argparse
import asyncio
import sys
from typing import List

import pandas as pd
from loguru import logger

from hourswatch.clients import LogAlertSink, PlacesClient, WebhookAlertSink
from hourswatch.config import (
    ALERT_WEBHOOK_URL,
    BACKGROUND_REFRESH_ENABLED,
    HOME_LOCATION,
    INPUT_CSV,
    LOG_LEVEL,
    NOTIFICATIONS_ENABLED,
    OUTPUT_CSV,
    RECORDS_PATH,
    REFRESH_INTERVAL_HOURS,
    UI_STALE_THRESHOLD_DAYS,
)
from hourswatch.models import BatchResult, BatchSummary, utcnow
from hourswatch.ordering import FilterOption, FixedLocations, SortOption, filter_and_sort, parse_coordinate
from hourswatch.records import add_from_search, import_from_csv
from hourswatch.store import JsonRecordStore
from hourswatch.sync import (
    AsyncioScheduler,
    ChangeNotifier,
    RefreshScheduler,
    SyncEngine,
    is_stale,
    record_message,
    status_at,
    todays_hours_text,
)


class App:
    """Every collaborator, constructed once per process and passed where needed."""

    def __init__(self, records_path: str = RECORDS_PATH):
        self.store = JsonRecordStore(records_path)
        self.places = PlacesClient()
        self.sink = WebhookAlertSink() if ALERT_WEBHOOK_URL else LogAlertSink()
        self.notifier = ChangeNotifier(self.sink)
        self.engine = SyncEngine(self.places, self.store, self.notifier)
        self.host_scheduler = AsyncioScheduler()
        self.refresh_scheduler = RefreshScheduler(self.host_scheduler, self.engine)
        self.engine.subscribe(self._report)

    async def start(self):
        if NOTIFICATIONS_ENABLED:
            await self.notifier.request_permission()

    async def close(self):
        await self.host_scheduler.shutdown()
        await self.places.close()
        if isinstance(self.sink, WebhookAlertSink):
            await self.sink.close()

    @staticmethod
    def _report(summary: BatchSummary):
        logger.info(f"[{summary.message_type.value}] {summary.message}")


def write_results_csv(results: List[BatchResult], output_path: str = OUTPUT_CSV):
    """Write per-record outcomes of a batch to CSV."""
    df = pd.DataFrame([
        {
            "Name": r.display_name,
            "Record ID": r.record_id,
            "Succeeded": r.succeeded,
            "Changes": r.change_count,
            "Failure": r.failure_reason.value if r.failure_reason else "",
            "Detail": r.failure_detail or "",
        }
        for r in results
    ], columns=["Name", "Record ID", "Succeeded", "Changes", "Failure", "Detail"])
    df.to_csv(output_path, index=False)
    logger.debug(f"Wrote {len(df)} result rows to {output_path}")


async def cmd_add(app: App, args):
    await add_from_search(app.places, app.store, args.name, args.address or "", args.label)


async def cmd_import(app: App, args):
    await import_from_csv(args.csv, app.places, app.store)


async def cmd_refresh(app: App, args):
    if args.record:
        record = await app.store.get(args.record)
        if record is None:
            logger.error(f"No record with id {args.record}")
            return
        result = await app.engine.refresh_record(record)
        message, message_type = record_message(result)
        logger.info(f"[{message_type.value}] {message}")
        write_results_csv([result], args.output)
        return
    results = await app.engine.refresh_all()
    write_results_csv(results, args.output)


async def cmd_sweep(app: App, args):
    results = await app.engine.sweep_stale()
    write_results_csv(results, args.output)


async def cmd_daemon(app: App, args):
    # Cold-start sweep, then keep a background run armed
    await app.engine.sweep_stale()
    if BACKGROUND_REFRESH_ENABLED:
        app.refresh_scheduler.arm(args.interval)
    else:
        logger.info("ℹ️ Background refresh is disabled")
        return
    await asyncio.Event().wait()


async def cmd_status(store: JsonRecordStore, args):
    now = utcnow().astimezone()
    records = await store.fetch_all()
    ordered = filter_and_sort(
        records,
        now,
        sort_option=SortOption[args.sort.upper()],
        filter_option=FilterOption[args.filter.upper()],
        search_text=args.search or "",
        locations=FixedLocations(current=args.here, home=args.home),
    )
    for record in ordered:
        status = status_at(record.opening_hours, now)
        hours = todays_hours_text(record.opening_hours, now) or "Hours not available"
        badge = " (stale)" if is_stale(record.last_updated, now, UI_STALE_THRESHOLD_DAYS) else ""
        print(f"{status.text:<13} {record.display_name} | {hours}{badge} | {record.id}")


COMMANDS = {
    "add": cmd_add,
    "import": cmd_import,
    "refresh": cmd_refresh,
    "sweep": cmd_sweep,
    "daemon": cmd_daemon,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Keep saved businesses' opening hours up to date")
    parser.add_argument("--records", default=RECORDS_PATH, help="Path to the records JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Search the directory and track the best match")
    add.add_argument("name")
    add.add_argument("--address")
    add.add_argument("--label")

    imp = sub.add_parser("import", help="Import businesses from CSV")
    imp.add_argument("--csv", default=INPUT_CSV)

    refresh = sub.add_parser("refresh", help="Refresh every business now, or one with --record")
    refresh.add_argument("--record")
    refresh.add_argument("--output", default=OUTPUT_CSV)

    sweep = sub.add_parser("sweep", help="Refresh businesses not updated in the last day")
    sweep.add_argument("--output", default=OUTPUT_CSV)

    daemon = sub.add_parser("daemon", help="Sweep, then refresh in the background on an interval")
    daemon.add_argument("--interval", type=float, default=REFRESH_INTERVAL_HOURS, help="Hours between runs")

    status = sub.add_parser("status", help="Show open/closed status for every business")
    status.add_argument("--sort", choices=[o.name.lower() for o in SortOption], default="name")
    status.add_argument("--filter", choices=[o.name.lower() for o in FilterOption], default="all")
    status.add_argument("--search")
    status.add_argument("--here", type=parse_coordinate, metavar="LAT,LON", help="Current location for distance_current")
    status.add_argument(
        "--home",
        type=parse_coordinate,
        default=HOME_LOCATION,
        metavar="LAT,LON",
        help="Home location for distance_home (defaults to HOME_LOCATION)",
    )
    return parser


async def main():
    args = build_parser().parse_args()

    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    if args.command == "status":
        # Read-only: no directory client or alerts needed
        await cmd_status(JsonRecordStore(args.records), args)
        return

    app = App(args.records)
    try:
        await app.start()
        await COMMANDS[args.command](app, args)
    finally:
        # Cleanup: close client sessions to prevent unclosed connector warnings
        await app.close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped")
