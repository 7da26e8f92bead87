"""
Offline mark-read queue contract.

The browser extension queues mark-read requests while offline and replays
them later. This module defines the queue interface and the replay step;
the queue's storage belongs to the caller.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from backend.auth.identity import Identity
from backend.errors import StorageUnavailable, ValidationError
from backend.services.read_tracker import MarkReadOutcome, ReadTracker

logger = logging.getLogger(__name__)


class QueuedMarkRead(BaseModel):
    """A mark-read request captured while offline."""
    item_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    paper_id: str
    metadata: dict
    notes: Optional[str] = None
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncReport(BaseModel):
    """Counts from one replay pass."""
    accepted: int = 0
    duplicates: int = 0
    dropped: int = 0
    remaining: int = 0


class OfflineQueue(ABC):
    """Ordered store of pending offline requests."""

    @abstractmethod
    def enqueue(self, item: QueuedMarkRead) -> None:
        """Append a request to the end of the queue."""

    @abstractmethod
    def pending(self) -> List[QueuedMarkRead]:
        """Pending requests, oldest first."""

    @abstractmethod
    def acknowledge(self, item_ids: Iterable[str]) -> None:
        """Remove requests that reached a final outcome."""


class InMemoryOfflineQueue(OfflineQueue):
    """Queue kept in process memory."""

    def __init__(self):
        self._items: List[QueuedMarkRead] = []

    def enqueue(self, item: QueuedMarkRead) -> None:
        self._items.append(item)

    def pending(self) -> List[QueuedMarkRead]:
        return list(self._items)

    def acknowledge(self, item_ids: Iterable[str]) -> None:
        done = set(item_ids)
        self._items = [item for item in self._items if item.item_id not in done]


async def sync_offline_queue(queue: OfflineQueue, tracker: ReadTracker, identity: Identity) -> SyncReport:
    """
    Replay queued mark-read requests in order.

    Accepted and duplicate-rejected requests are final and leave the queue.
    Requests that fail validation can never succeed and are dropped. When
    storage is unavailable the pass stops and the rest stays queued for the
    next attempt.

    Args:
        queue: Queue to drain
        tracker: Read tracker to replay against
        identity: Verified identity the requests were made as

    Returns:
        SyncReport for this pass
    """
    report = SyncReport()
    finished: List[str] = []
    items = queue.pending()

    if not items:
        logger.debug("Offline queue is empty.")
        return report

    for item in items:
        try:
            result = await tracker.mark_read(
                item.paper_id,
                item.metadata,
                {"notes": item.notes},
                identity,
            )
        except ValidationError as e:
            logger.warning(f"Dropping queued read for {item.paper_id}: {e}")
            report.dropped += 1
            finished.append(item.item_id)
            continue
        except StorageUnavailable as e:
            logger.warning(f"Storage unavailable while syncing offline queue: {e}")
            break

        if result.outcome == MarkReadOutcome.DUPLICATE_REJECTED:
            report.duplicates += 1
        else:
            report.accepted += 1
        finished.append(item.item_id)

    queue.acknowledge(finished)
    report.remaining = len(queue.pending())
    logger.info(
        f"Sync attempt finished. {report.accepted} requests synced, "
        f"{report.duplicates} duplicates, {report.dropped} dropped, {report.remaining} remaining."
    )
    return report
