"""Request-scoped, best-effort candidate writes.

Inserts never overwrite an existing (owner, url) row. An enrichment update
that arrives before its row exists is held and applied when the insert
lands later in the same request; anything still held when the request
ends is dropped with an info log.
"""

import logging
import sqlite3
from typing import Any

from affiliate_scout.core.db import candidate_exists, insert_candidate, update_candidate
from affiliate_scout.core.schemas import CandidateResult

logger = logging.getLogger(__name__)


class CandidateWriter:
    """Persistence gateway for one search request.

    Usage::

        writer = CandidateWriter(conn, owner="u1", job_id=job_id)
        writer.insert_if_absent(candidate.url, candidate)
        writer.update_by_key(candidate.url, {"traffic_json": "...", "is_enriching": False})
        writer.close()
    """

    def __init__(
        self,
        conn: sqlite3.Connection | None,
        owner: str,
        job_id: str | None = None,
    ) -> None:
        self._conn = conn
        self._owner = owner
        self._job_id = job_id
        self._pending: dict[str, dict[str, Any]] = {}
        self.inserted = 0
        self.updated = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def insert_if_absent(self, key: str, record: CandidateResult) -> bool:
        """Insert a candidate. Returns True only if a new row was written."""
        if self._conn is None:
            return False
        try:
            created = insert_candidate(self._conn, self._owner, record, self._job_id)
        except sqlite3.Error as exc:
            logger.warning("Insert of %s failed: %s", key, exc)
            return False
        if created:
            self.inserted += 1
        held = self._pending.pop(key, None)
        if held:
            logger.debug("Applying held update for %s", key)
            self.update_by_key(key, held)
        return created

    def exists_by_key(self, key: str) -> bool:
        if self._conn is None:
            return False
        try:
            return candidate_exists(self._conn, self._owner, key)
        except sqlite3.Error as exc:
            logger.warning("Lookup of %s failed: %s", key, exc)
            return False

    def update_by_key(self, key: str, fields: dict[str, Any]) -> bool:
        """Update enrichment columns. A missing row is a logged no-op; the update is held."""
        if self._conn is None:
            return False
        try:
            updated = update_candidate(self._conn, self._owner, key, fields)
        except sqlite3.Error as exc:
            logger.warning("Update of %s failed: %s", key, exc)
            return False
        if updated:
            self.updated += 1
            return True
        logger.info("No stored row for %s yet, holding update", key)
        self._pending.setdefault(key, {}).update(fields)
        return False

    def close(self) -> None:
        """End of request: drop updates whose row never arrived."""
        if self._pending:
            logger.info(
                "Dropping %d held updates with no stored row: %s",
                len(self._pending), ", ".join(sorted(self._pending)),
            )
            self._pending.clear()
        logger.debug("Writer closed: %d inserted, %d updated", self.inserted, self.updated)
