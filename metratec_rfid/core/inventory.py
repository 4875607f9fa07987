# metratec_rfid/core/inventory.py

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from metratec_rfid.core.tags import Tag

logger = logging.getLogger(__name__)


class Inventory:
    """
    Aggregates the tags reported during an inventory session.

    Every access goes through one asyncio.Lock so the dispatcher's reader
    task and application calls never see a half applied report.
    """

    def __init__(self):
        self._tags: Dict[str, Tag] = {}
        self._lock = asyncio.Lock()

    async def update(self, tags: Iterable[Tag]) -> List[Tag]:
        """
        Applies a report to the aggregate.

        Unknown IDs are added as new records, known IDs are merged.

        Returns:
            Copies of the aggregated records touched by this report, in report order.
        """
        touched: List[Tag] = []
        async with self._lock:
            for tag in tags:
                existing = self._tags.get(tag.id)
                if existing is None:
                    existing = tag.copy()
                    self._tags[tag.id] = existing
                    logger.debug(f"New tag in inventory: {tag.id}")
                else:
                    existing.merge(tag)
                touched.append(existing.copy())
        return touched

    async def clear(self) -> None:
        async with self._lock:
            if self._tags:
                logger.debug(f"Clearing inventory ({len(self._tags)} tags)")
            self._tags.clear()

    async def fetch(self) -> List[Tag]:
        """Returns all aggregated tags and clears the inventory."""
        async with self._lock:
            tags = list(self._tags.values())
            self._tags.clear()
        return tags

    async def snapshot(self) -> List[Tag]:
        """Returns copies of all aggregated tags without clearing."""
        async with self._lock:
            return [tag.copy() for tag in self._tags.values()]

    def get(self, tag_id: str) -> Optional[Tag]:
        tag = self._tags.get(tag_id)
        return tag.copy() if tag is not None else None

    def __len__(self) -> int:
        return len(self._tags)

    def __contains__(self, tag_id: object) -> bool:
        return tag_id in self._tags
