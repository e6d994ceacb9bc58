from typing import List, Tuple

from hourswatch.models import BatchResult, BatchSummary, MessageType


def summarize(results: List[BatchResult], expired: bool = False) -> BatchSummary:
    """
    Aggregate per-record results into counts and a single user-facing message.
    Individual failures are only ever surfaced through these counts.
    """
    total = len(results)
    succeeded = sum(1 for r in results if r.succeeded)
    failed = sum(1 for r in results if r.attempted and not r.succeeded)
    changed = sum(1 for r in results if r.has_changes)

    if failed > 0:
        message, message_type = f"Updated {succeeded} of {total} businesses", MessageType.WARNING
    elif changed > 0:
        message, message_type = f"Updated {changed} business(es) with new hours", MessageType.SUCCESS
    else:
        message, message_type = "All businesses are up to date", MessageType.INFO

    return BatchSummary(
        total=total,
        succeeded=succeeded,
        failed=failed,
        changed=changed,
        expired=expired,
        message=message,
        message_type=message_type,
    )


def record_message(result: BatchResult) -> Tuple[str, MessageType]:
    """Message shown after a manual refresh of one record."""
    if not result.succeeded:
        return "Failed to refresh", MessageType.ERROR
    if result.change_count:
        plural = "" if result.change_count == 1 else "s"
        return f"Hours updated ({result.change_count} change{plural})", MessageType.SUCCESS
    return "Already up to date", MessageType.INFO
