from __future__ import annotations

import asyncio
import logging
from typing import Any

from nft_indexer.app.application.services.caches import ProcessCache
from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.domain.entities import Collection
from nft_indexer.app.domain.ports.out import ContractCaller, NftStore

logger = logging.getLogger(__name__)


class ContractIntrospector:
    """
    Resolves collection-level metadata (name, symbol, totalSupply).

    Lookup order: process cache -> persistent store -> on-chain reads.
    The three reads are independent; a failed one leaves its field unset
    (totalSupply falls back to 0) without affecting the others.
    """

    def __init__(
        self,
        *,
        caller: ContractCaller,
        store: NftStore,
        policy: CallPolicy,
        min_block_height: int = 0,
        cache: ProcessCache[str, Collection] | None = None,
    ) -> None:
        self._caller = caller
        self._store = store
        self._policy = policy
        self._min_block_height = min_block_height
        self._cache: ProcessCache[str, Collection] = cache if cache is not None else ProcessCache()

    async def resolve_collection(self, address: str, block_height: int) -> Collection:
        address = address.lower()

        cached = self._cache.get(address)
        if cached is not None:
            return cached

        stored = await self._store.get_collection(address)
        if stored is not None:
            return self._cache.put(address, stored)

        height = max(block_height, self._min_block_height)
        name, symbol, total_supply = await asyncio.gather(
            self._read(address, "name", height),
            self._read(address, "symbol", height),
            self._read(address, "totalSupply", height),
        )

        collection = Collection(
            id=address,
            name=self._as_text(name),
            symbol=self._as_text(symbol),
            total_supply=self._as_uint(total_supply),
        )
        logger.info(
            "Resolved collection %s name=%r symbol=%r total_supply=%s",
            collection.id,
            collection.name,
            collection.symbol,
            collection.total_supply,
        )
        return self._cache.put(address, collection)

    async def _read(self, address: str, method: str, height: int) -> Any | None:
        try:
            return await self._policy.run(
                lambda: self._caller.call(
                    contract_address=address,
                    method=method,
                    block_height=height,
                ),
                label=f"{method}({address})",
            )
        except Exception as exc:
            logger.warning("Could not read %s() of %s: %r", method, address, exc)
            return None

    @staticmethod
    def _as_text(val: Any) -> str | None:
        if val is None:
            return None

        if isinstance(val, str):
            return val.strip() or None

        if isinstance(val, (bytes, bytearray, memoryview)):
            try:
                return bytes(val).rstrip(b"\x00").decode("utf-8").strip() or None
            except UnicodeDecodeError:
                return None

        return None

    @staticmethod
    def _as_uint(val: Any) -> int:
        if isinstance(val, bool) or not isinstance(val, int):
            return 0
        return val if val >= 0 else 0
