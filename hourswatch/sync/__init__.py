"""Sync engine, change detection and background refresh."""
from hourswatch.sync.change_notifier import AlertSink, ChangeNotifier, format_alert
from hourswatch.sync.conversion import convert_payload
from hourswatch.sync.host_scheduler import AsyncioScheduler
from hourswatch.sync.refresh_scheduler import RefreshScheduler, RunOutcome, Scheduler, SchedulerState
from hourswatch.sync.schedule_differ import diff_schedules
from hourswatch.sync.status_engine import is_stale, status_at, todays_hours_text
from hourswatch.sync.summary import record_message, summarize
from hourswatch.sync.sync_engine import DirectoryLookupService, RecordStore, SyncEngine

__all__ = [
    "AlertSink",
    "AsyncioScheduler",
    "ChangeNotifier",
    "DirectoryLookupService",
    "RecordStore",
    "RefreshScheduler",
    "RunOutcome",
    "Scheduler",
    "SchedulerState",
    "SyncEngine",
    "convert_payload",
    "diff_schedules",
    "format_alert",
    "is_stale",
    "record_message",
    "status_at",
    "summarize",
    "todays_hours_text",
]
