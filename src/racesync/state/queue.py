"""Pure operations on the pending-push sync queue."""

from __future__ import annotations

from collections.abc import Sequence

from racesync.models.entry import Entry
from racesync.models.sync import SyncQueueItem


def enqueue(queue: Sequence[SyncQueueItem], entry: Entry) -> list[SyncQueueItem]:
    """Append *entry*; an entry already queued is refreshed in place, not duplicated."""
    for index, item in enumerate(queue):
        if item.entry.id == entry.id:
            result = list(queue)
            result[index] = item.model_copy(update={"entry": entry})
            return result
    return [*queue, SyncQueueItem(entry=entry)]


def dequeue(queue: Sequence[SyncQueueItem], entry_id: str) -> list[SyncQueueItem]:
    return [item for item in queue if item.entry.id != entry_id]


def record_attempt(
    queue: Sequence[SyncQueueItem],
    entry_id: str,
    *,
    retry_count: int,
    last_attempt: float,
    error: str | None,
) -> list[SyncQueueItem]:
    return [
        item.model_copy(update={"retry_count": retry_count, "last_attempt": last_attempt, "error": error})
        if item.entry.id == entry_id
        else item
        for item in queue
    ]


def contains(queue: Sequence[SyncQueueItem], entry_id: str) -> bool:
    return any(item.entry.id == entry_id for item in queue)
