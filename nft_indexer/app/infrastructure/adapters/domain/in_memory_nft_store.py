from __future__ import annotations

import copy
from typing import Iterable, Sequence, TypeVar

from nft_indexer.app.domain.entities import Collection, Owner, Token, Transfer
from nft_indexer.app.domain.ports.out import NftStore

E = TypeVar("E")


def _detached(entity: E) -> E:
    return copy.deepcopy(entity)


class InMemoryNftStore(NftStore):
    """
    Process-local NftStore with the same contract as the SQL adapter.

    Records are copied on write and on read, so callers never share state
    with the store. `persist_batch` restores the previous state when any
    write fails. Useful for dry runs and tests.
    """

    def __init__(self) -> None:
        self.collections: dict[str, Collection] = {}
        self.owners: dict[str, Owner] = {}
        self.tokens: dict[str, Token] = {}
        self.transfers: dict[str, Transfer] = {}

    async def get_collection(self, address: str) -> Collection | None:
        collection = self.collections.get(address)
        return _detached(collection) if collection is not None else None

    async def find_collections(self, ids: Iterable[str]) -> list[Collection]:
        return [_detached(self.collections[i]) for i in set(ids) if i in self.collections]

    async def find_owners(self, ids: Iterable[str]) -> list[Owner]:
        return [_detached(self.owners[i]) for i in set(ids) if i in self.owners]

    async def find_tokens(self, ids: Iterable[str]) -> list[Token]:
        return [_detached(self.tokens[i]) for i in set(ids) if i in self.tokens]

    async def find_tokens_by_uri(self, uri: str) -> list[Token]:
        return [_detached(t) for _, t in sorted(self.tokens.items()) if t.uri == uri]

    async def find_tokens_missing_image(self, *, limit: int | None = None) -> list[Token]:
        matches = [
            _detached(t) for _, t in sorted(self.tokens.items()) if t.image_uri is None and t.uri
        ]
        return matches if limit is None else matches[:limit]

    async def last_indexed_block(self) -> int | None:
        if not self.transfers:
            return None
        return max(t.block_number for t in self.transfers.values())

    async def upsert_collections(self, collections: Sequence[Collection]) -> None:
        for incoming in collections:
            stored = self.collections.get(incoming.id)
            if stored is None:
                self.collections[incoming.id] = _detached(incoming)
                continue
            stored.name = incoming.name if incoming.name is not None else stored.name
            stored.symbol = incoming.symbol if incoming.symbol is not None else stored.symbol
            stored.total_supply = incoming.total_supply or stored.total_supply

    async def upsert_owners(self, owners: Sequence[Owner]) -> None:
        for owner in owners:
            self.owners[owner.id] = _detached(owner)

    async def upsert_tokens(self, tokens: Sequence[Token]) -> None:
        for token in tokens:
            self.tokens[token.id] = _detached(token)

    async def upsert_transfers(self, transfers: Sequence[Transfer]) -> None:
        for transfer in transfers:
            self.transfers.setdefault(transfer.id, transfer)

    async def persist_batch(
        self,
        *,
        collections: Sequence[Collection],
        owners: Sequence[Owner],
        tokens: Sequence[Token],
        transfers: Sequence[Transfer],
    ) -> None:
        snapshot = (
            _detached(self.collections),
            _detached(self.owners),
            _detached(self.tokens),
            dict(self.transfers),
        )
        try:
            await self.upsert_collections(collections)
            await self.upsert_owners(owners)
            await self.upsert_tokens(tokens)
            await self.upsert_transfers(transfers)
        except Exception:
            self.collections, self.owners, self.tokens, self.transfers = snapshot
            raise
