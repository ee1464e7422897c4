from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from nft_indexer.app.domain.entities import Collection, Owner, Token, Transfer
from nft_indexer.app.domain.ports.out import NftStore
from nft_indexer.app.infrastructure.db.models.domain.collections import NftCollectionsDB
from nft_indexer.app.infrastructure.db.models.domain.owners import NftOwnersDB
from nft_indexer.app.infrastructure.db.models.domain.tokens import NftTokensDB
from nft_indexer.app.infrastructure.db.models.domain.transfers import NftTransfersDB

logger = logging.getLogger(__name__)

_COLLECTIONS = NftCollectionsDB.__table__
_OWNERS = NftOwnersDB.__table__
_TOKENS = NftTokensDB.__table__
_TRANSFERS = NftTransfersDB.__table__


def _chunks(seq: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


class SqlAlchemyNftStore(NftStore):
    """
    NftStore backed by Postgres (domain.nft_* tables).

    Writes:
    - collections: ON CONFLICT DO UPDATE, keeping stored name/symbol/supply
      when the incoming value is NULL (or 0 for supply),
    - owners, tokens: ON CONFLICT DO UPDATE (last write wins),
    - transfers: ON CONFLICT DO NOTHING (immutable ledger).
    Each upsert runs in its own transaction; `persist_batch` runs all four
    in one. Writes are chunked by `batch_size` rows.
    """

    def __init__(self, engine: AsyncEngine, *, batch_size: int = 1_000) -> None:
        self._engine = engine
        self._batch_size = batch_size

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------

    async def get_collection(self, address: str) -> Collection | None:
        rows = await self._fetch(select(_COLLECTIONS).where(_COLLECTIONS.c.id == address))
        return self._to_collection(rows[0]) if rows else None

    async def find_collections(self, ids: Iterable[str]) -> list[Collection]:
        ids = list(ids)
        if not ids:
            return []
        rows = await self._fetch(select(_COLLECTIONS).where(_COLLECTIONS.c.id.in_(ids)))
        return [self._to_collection(r) for r in rows]

    async def find_owners(self, ids: Iterable[str]) -> list[Owner]:
        ids = list(ids)
        if not ids:
            return []
        rows = await self._fetch(select(_OWNERS).where(_OWNERS.c.id.in_(ids)))
        return [self._to_owner(r) for r in rows]

    async def find_tokens(self, ids: Iterable[str]) -> list[Token]:
        ids = list(ids)
        if not ids:
            return []
        rows = await self._fetch(select(_TOKENS).where(_TOKENS.c.id.in_(ids)))
        return [self._to_token(r) for r in rows]

    async def find_tokens_by_uri(self, uri: str) -> list[Token]:
        rows = await self._fetch(select(_TOKENS).where(_TOKENS.c.uri == uri).order_by(_TOKENS.c.id))
        return [self._to_token(r) for r in rows]

    async def find_tokens_missing_image(self, *, limit: int | None = None) -> list[Token]:
        stmt = (
            select(_TOKENS)
            .where(_TOKENS.c.image_uri.is_(None), _TOKENS.c.uri != "")
            .order_by(_TOKENS.c.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await self._fetch(stmt)
        return [self._to_token(r) for r in rows]

    async def last_indexed_block(self) -> int | None:
        rows = await self._fetch(select(func.max(_TRANSFERS.c.block_number).label("max_block")))
        max_block = rows[0]["max_block"] if rows else None
        return int(max_block) if max_block is not None else None

    async def _fetch(self, stmt: Any) -> list[Mapping[str, Any]]:
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt)
            return list(result.mappings().all())

    # ---------------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------------

    async def upsert_collections(self, collections: Sequence[Collection]) -> None:
        async with self._engine.begin() as conn:
            await self._write_collections(conn, collections)

    async def upsert_owners(self, owners: Sequence[Owner]) -> None:
        async with self._engine.begin() as conn:
            await self._write_owners(conn, owners)

    async def upsert_tokens(self, tokens: Sequence[Token]) -> None:
        async with self._engine.begin() as conn:
            await self._write_tokens(conn, tokens)

    async def upsert_transfers(self, transfers: Sequence[Transfer]) -> None:
        async with self._engine.begin() as conn:
            await self._write_transfers(conn, transfers)

    async def persist_batch(
        self,
        *,
        collections: Sequence[Collection],
        owners: Sequence[Owner],
        tokens: Sequence[Token],
        transfers: Sequence[Transfer],
    ) -> None:
        # One transaction: a failed write rolls back the whole batch.
        async with self._engine.begin() as conn:
            await self._write_collections(conn, collections)
            await self._write_owners(conn, owners)
            await self._write_tokens(conn, tokens)
            await self._write_transfers(conn, transfers)

    async def _write_collections(self, conn: AsyncConnection, collections: Sequence[Collection]) -> None:
        payload = [
            {"id": c.id, "name": c.name, "symbol": c.symbol, "total_supply": c.total_supply}
            for c in collections
        ]
        stmt = insert(_COLLECTIONS)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_COLLECTIONS.c.id],
            set_={
                "name": func.coalesce(stmt.excluded.name, _COLLECTIONS.c.name),
                "symbol": func.coalesce(stmt.excluded.symbol, _COLLECTIONS.c.symbol),
                "total_supply": func.coalesce(
                    func.nullif(stmt.excluded.total_supply, 0),
                    _COLLECTIONS.c.total_supply,
                ),
            },
        )
        await self._execute_chunked(conn, stmt, payload, table="nft_collections")

    async def _write_owners(self, conn: AsyncConnection, owners: Sequence[Owner]) -> None:
        payload = [
            {
                "id": o.id,
                "balance": o.balance,
                "collection_balances": dict(o.collection_balances),
            }
            for o in owners
        ]
        stmt = insert(_OWNERS)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_OWNERS.c.id],
            set_={
                "balance": stmt.excluded.balance,
                "collection_balances": stmt.excluded.collection_balances,
            },
        )
        await self._execute_chunked(conn, stmt, payload, table="nft_owners")

    async def _write_tokens(self, conn: AsyncConnection, tokens: Sequence[Token]) -> None:
        payload = [
            {
                "id": t.id,
                "token_id": t.token_id,
                "collection_id": t.collection,
                "owner_id": t.owner,
                "uri": t.uri,
                "old_uri": t.old_uri,
                "image_uri": t.image_uri,
            }
            for t in tokens
        ]
        stmt = insert(_TOKENS)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_TOKENS.c.id],
            set_={
                "owner_id": stmt.excluded.owner_id,
                "collection_id": stmt.excluded.collection_id,
                "uri": stmt.excluded.uri,
                "old_uri": stmt.excluded.old_uri,
                "image_uri": stmt.excluded.image_uri,
            },
        )
        await self._execute_chunked(conn, stmt, payload, table="nft_tokens")

    async def _write_transfers(self, conn: AsyncConnection, transfers: Sequence[Transfer]) -> None:
        payload = [
            {
                "id": t.id,
                "from_id": t.from_owner,
                "to_id": t.to_owner,
                "token_id": t.token,
                "block_number": t.block_number,
                "timestamp": t.timestamp,
                "transaction_hash": t.transaction_hash,
            }
            for t in transfers
        ]
        stmt = insert(_TRANSFERS).on_conflict_do_nothing(index_elements=[_TRANSFERS.c.id])
        await self._execute_chunked(conn, stmt, payload, table="nft_transfers")

    async def _execute_chunked(
        self,
        conn: AsyncConnection,
        stmt: Any,
        payload: list[dict[str, Any]],
        *,
        table: str,
    ) -> None:
        if not payload:
            return

        for chunk in _chunks(payload, self._batch_size):
            await conn.execute(stmt, list(chunk))

        logger.debug("Upserted %s rows into domain.%s", len(payload), table)

    # ---------------------------------------------------------------------
    # Row mapping
    # ---------------------------------------------------------------------

    @staticmethod
    def _to_collection(r: Mapping[str, Any]) -> Collection:
        return Collection(
            id=r["id"],
            name=r["name"],
            symbol=r["symbol"],
            total_supply=int(r["total_supply"] or 0),
        )

    @staticmethod
    def _to_owner(r: Mapping[str, Any]) -> Owner:
        return Owner(
            id=r["id"],
            balance=int(r["balance"]) if r["balance"] is not None else None,
            collection_balances={k: int(v) for k, v in (r["collection_balances"] or {}).items()},
        )

    @staticmethod
    def _to_token(r: Mapping[str, Any]) -> Token:
        return Token(
            id=r["id"],
            token_id=int(r["token_id"]),
            collection=r["collection_id"],
            owner=r["owner_id"],
            uri=r["uri"],
            old_uri=r["old_uri"],
            image_uri=r["image_uri"],
        )
