"""In-memory set of message IDs that already produced a task."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)


class DeduplicationLedger:
    """Processed-message ledger for one monitoring session.

    Seeded once from the task store, then only grown. There is no eviction;
    a new monitoring session builds a new ledger.
    """

    def __init__(self) -> None:
        self._ids: set[str] = set()
        self._seeded = False

    @property
    def seeded(self) -> bool:
        return self._seeded

    def seed(self, ids: Iterable[str]) -> int:
        """Bulk-insert known IDs. Returns the number of distinct IDs added.

        Raises:
            RuntimeError: If the ledger was already seeded.
        """
        if self._seeded:
            raise RuntimeError("Ledger already seeded for this session")
        before = len(self._ids)
        self._ids.update(i for i in ids if i)
        self._seeded = True
        added = len(self._ids) - before
        logger.info("Loaded %d existing processed message IDs", added)
        return added

    def has(self, message_id: str) -> bool:
        return message_id in self._ids

    def add(self, message_id: str) -> bool:
        """Mark an ID processed. Returns False if it was already present."""
        if message_id in self._ids:
            return False
        self._ids.add(message_id)
        return True

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
