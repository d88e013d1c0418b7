"""Durable advisory lock serializing generation per (fingerprint, page number)."""

import asyncio
import logging
import sqlite3
import time
import uuid
from typing import Awaitable, Callable, Optional

from config.exceptions import DatabaseError, GenerationInProgressError
from config.settings import Settings
from models.database import Database

logger = logging.getLogger(__name__)


class GenerationLock:
    """Lease rows in generation_locks.

    A lease expires after generation_lock_ttl_seconds so a crashed owner
    cannot block a search page forever; expired leases are reclaimed by the
    next acquirer.
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.db = db
        self.settings = settings or Settings()
        self._clock = clock
        self._sleep = sleep

    def try_acquire(self, fingerprint: str, page_number: int) -> Optional[str]:
        """Take the lease if it is free or expired.

        Returns:
            The lease token, or None if another owner holds it.
        """
        now = self._clock()
        token = uuid.uuid4().hex
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    "DELETE FROM generation_locks WHERE hash = ? AND page_number = ? AND expires_at <= ?",
                    (fingerprint, page_number, now),
                )
                cur = conn.execute(
                    "INSERT OR IGNORE INTO generation_locks (hash, page_number, token, expires_at) "
                    "VALUES (?, ?, ?, ?)",
                    (fingerprint, page_number, token, now + self.settings.generation_lock_ttl_seconds),
                )
                acquired = cur.rowcount == 1
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to acquire generation lock: {e}") from e

        if acquired:
            logger.debug("Lock acquired: %s page %d", fingerprint[:12], page_number)
            return token
        return None

    def renew(self, fingerprint: str, page_number: int, token: str) -> bool:
        """Push the expiry of a lease token still owns one TTL into the future.

        Returns:
            False if the lease was lost (expired and reclaimed by another owner).
        """
        try:
            with self.db.connection() as conn:
                cur = conn.execute(
                    "UPDATE generation_locks SET expires_at = ? WHERE hash = ? AND page_number = ? AND token = ?",
                    (self._clock() + self.settings.generation_lock_ttl_seconds, fingerprint, page_number, token),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to renew generation lock: {e}") from e
        return cur.rowcount == 1

    def release(self, fingerprint: str, page_number: int, token: str) -> None:
        """Drop the lease if token still owns it."""
        with self.db.connection() as conn:
            conn.execute(
                "DELETE FROM generation_locks WHERE hash = ? AND page_number = ? AND token = ?",
                (fingerprint, page_number, token),
            )
        logger.debug("Lock released: %s page %d", fingerprint[:12], page_number)

    def is_held(self, fingerprint: str, page_number: int) -> bool:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM generation_locks WHERE hash = ? AND page_number = ? AND expires_at > ?",
                (fingerprint, page_number, self._clock()),
            ).fetchone()
            return row is not None

    async def wait_until_released(self, fingerprint: str, page_number: int) -> float:
        """Poll until no live lease exists.

        Returns:
            Seconds spent waiting.

        Raises:
            GenerationInProgressError: If the lease is still held after
                generation_lock_wait_seconds.
        """
        poll = self.settings.generation_lock_poll_seconds
        limit = self.settings.generation_lock_wait_seconds
        waited = 0.0
        while await asyncio.to_thread(self.is_held, fingerprint, page_number):
            if waited >= limit:
                logger.warning("Gave up waiting for %s page %d after %.1fs",
                               fingerprint[:12], page_number, waited)
                raise GenerationInProgressError(fingerprint, page_number, waited)
            await self._sleep(poll)
            waited += poll
        return waited
