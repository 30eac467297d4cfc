"""
Activity log.

Fire-and-forget trail of booking decisions. Writes run as detached
asyncio tasks so the booking path never waits on them; a failed write
is logged and dropped.
"""

import asyncio
import logging
import uuid
from typing import Optional

from app.core.scheduling.store import AppointmentStore

logger = logging.getLogger(__name__)


class ActivityLog:
    """Publishes activity entries to the store in the background."""

    def __init__(self, store: AppointmentStore):
        self._store = store
        self._pending: set[asyncio.Task] = set()

    def log_event(self, owner_id: uuid.UUID, message: str) -> Optional[asyncio.Task]:
        """Schedule an activity entry and return immediately.

        Returns:
            The background task, or None if no event loop is running
        """
        logger.info(f"ACTIVITY: owner={owner_id} | {message}")
        try:
            task = asyncio.get_running_loop().create_task(self._write(owner_id, message))
        except RuntimeError:
            logger.warning("No running event loop, activity entry dropped")
            return None

        # Keep a reference so the task is not garbage collected mid-flight
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, owner_id: uuid.UUID, message: str) -> None:
        try:
            await self._store.record_activity(owner_id, message)
        except Exception as e:
            logger.warning(f"Failed to record activity for owner={owner_id}: {e}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
