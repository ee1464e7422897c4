from __future__ import annotations

from enum import Enum
from typing import Iterable

from nft_indexer.app.domain.entities import Owner


class BalanceDirection(str, Enum):
    INCREMENT = "increment"
    DECREMENT = "decrement"


class BalanceTracker:
    """
    Per-collection owner counters.

    Rules:
      - the first touch of (owner, collection) sets the counter to 1,
        whatever the direction,
      - later touches add or subtract 1; counters are not clamped at zero,
      - collections outside `tracked_collections` are ignored
        (an empty/None set tracks every collection).
    """

    def __init__(self, tracked_collections: Iterable[str] | None = None) -> None:
        tracked = {addr.lower() for addr in tracked_collections or ()}
        self._tracked: frozenset[str] | None = frozenset(tracked) if tracked else None

    def is_tracked(self, collection_address: str) -> bool:
        return self._tracked is None or collection_address.lower() in self._tracked

    def adjust(
        self,
        owners: dict[str, Owner],
        owner_id: str,
        collection_address: str,
        direction: BalanceDirection,
    ) -> dict[str, Owner]:
        owner = owners.get(owner_id)
        if owner is None or not self.is_tracked(collection_address):
            return owners

        key = collection_address.lower()
        current = owner.collection_balances.get(key)

        if current is None:
            owner.collection_balances[key] = 1
        elif direction is BalanceDirection.INCREMENT:
            owner.collection_balances[key] = current + 1
        else:
            owner.collection_balances[key] = current - 1

        return owners
