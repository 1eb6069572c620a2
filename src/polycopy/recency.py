"""Bounded recency window for dedup keys.

오래된 키부터 제거 (insertion order). 보존 윈도우 안에서는 set과 동일하게 동작.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable
from datetime import datetime, timezone
from typing import Optional


class RecencySet:
    """Set that keeps at most ``max_items`` keys, evicting the oldest first.

    Args:
        max_items: 보존할 최대 키 개수.
    """

    def __init__(self, max_items: int = 10_000):
        if max_items <= 0:
            raise ValueError(f"max_items must be positive: {max_items}")
        self.max_items = max_items
        self._items: OrderedDict[Hashable, datetime] = OrderedDict()

    def add(self, key: Hashable, when: Optional[datetime] = None) -> None:
        """키 추가. 이미 있으면 가장 최근으로 이동."""
        if key in self._items:
            self._items.move_to_end(key)
        self._items[key] = when or datetime.now(tz=timezone.utc)
        while len(self._items) > self.max_items:
            self._items.popitem(last=False)

    def added_at(self, key: Hashable) -> Optional[datetime]:
        return self._items.get(key)

    def discard(self, key: Hashable) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)
