from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from nft_indexer.app.application.services.domain.balance_tracker import (
    BalanceDirection,
    BalanceTracker,
)
from nft_indexer.app.application.services.domain.contract_introspector import ContractIntrospector
from nft_indexer.app.application.services.domain.uri_resolver import URIResolver
from nft_indexer.app.domain.entities import (
    Collection,
    Owner,
    Token,
    Transfer,
    TransferFact,
    token_key,
)
from nft_indexer.app.domain.ports.out import NftStore

logger = logging.getLogger(__name__)


@dataclass
class WorkingSet:
    """Batch-scoped entities keyed by identity; the only state a batch mutates."""

    collections: dict[str, Collection] = field(default_factory=dict)
    owners: dict[str, Owner] = field(default_factory=dict)
    tokens: dict[str, Token] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchResult:
    collections: list[Collection]
    owners: list[Owner]
    tokens: list[Token]
    transfers: list[Transfer]


class ReconciliationEngine:
    """
    Applies one batch of decoded ERC-721 transfers to the NFT domain.

    Steps (once per batch):
      1. bulk-load the tokens, owners and collections the batch touches,
      2. resolve collections the store does not know yet,
      3. apply every transfer in chain order (owners, token URI/image,
         URI migrations, per-collection balances),
      4. persist collections, owners, tokens, then transfers in one
         unit of work.

    Enrichment failures never abort the batch; store failures do.
    """

    def __init__(
        self,
        *,
        store: NftStore,
        introspector: ContractIntrospector,
        uri_resolver: URIResolver,
        balance_tracker: BalanceTracker,
    ) -> None:
        self._store = store
        self._introspector = introspector
        self._uri_resolver = uri_resolver
        self._balance_tracker = balance_tracker

    async def process_batch(self, facts: Sequence[TransferFact]) -> BatchResult:
        if not facts:
            return BatchResult(collections=[], owners=[], tokens=[], transfers=[])

        working = await self._load_working_set(facts)
        await self._ensure_collections(working, facts)

        transfers: list[Transfer] = []
        for fact in facts:
            transfers.append(await self._apply(working, fact))

        result = BatchResult(
            collections=list(working.collections.values()),
            owners=list(working.owners.values()),
            tokens=list(working.tokens.values()),
            transfers=transfers,
        )
        await self._persist(result)

        logger.info(
            "Reconciled %s transfers (%s tokens, %s owners, %s collections)",
            len(result.transfers),
            len(result.tokens),
            len(result.owners),
            len(result.collections),
        )
        return result

    # ---------------------------------------------------------------------
    # Working set
    # ---------------------------------------------------------------------

    async def _load_working_set(self, facts: Sequence[TransferFact]) -> WorkingSet:
        token_ids: set[str] = set()
        owner_ids: set[str] = set()
        addresses: set[str] = set()

        for fact in facts:
            token_ids.add(token_key(fact.contract_address, fact.token_id))
            owner_ids.add(fact.from_address)
            owner_ids.add(fact.to_address)
            addresses.add(fact.contract_address)

        tokens = await self._store.find_tokens(token_ids)
        owners = await self._store.find_owners(owner_ids)
        collections = await self._store.find_collections(addresses)

        return WorkingSet(
            collections={c.id: c for c in collections},
            owners={o.id: o for o in owners},
            tokens={t.id: t for t in tokens},
        )

    async def _ensure_collections(self, working: WorkingSet, facts: Sequence[TransferFact]) -> None:
        first_seen: dict[str, int] = {}
        for fact in facts:
            first_seen.setdefault(fact.contract_address, fact.block_number)

        for address, height in first_seen.items():
            if address not in working.collections:
                working.collections[address] = await self._introspector.resolve_collection(
                    address,
                    height,
                )

    @staticmethod
    def _owner(working: WorkingSet, address: str) -> Owner:
        owner = working.owners.get(address)
        if owner is None:
            owner = Owner(id=address, balance=0)
            working.owners[address] = owner
        return owner

    # ---------------------------------------------------------------------
    # Per-transfer application
    # ---------------------------------------------------------------------

    async def _apply(self, working: WorkingSet, fact: TransferFact) -> Transfer:
        from_owner = self._owner(working, fact.from_address)
        to_owner = self._owner(working, fact.to_address)

        key = token_key(fact.contract_address, fact.token_id)
        token = working.tokens.get(key)

        if token is None:
            uri = await self._uri_resolver.resolve_uri(
                fact.contract_address,
                fact.token_id,
                fact.block_number,
            )
            image_uri = await self._uri_resolver.resolve_image(uri)

            self._balance_tracker.adjust(
                working.owners,
                to_owner.id,
                fact.contract_address,
                BalanceDirection.INCREMENT,
            )

            token = Token(
                id=key,
                token_id=fact.token_id,
                collection=fact.contract_address,
                owner=to_owner.id,
                uri=uri,
                old_uri=uri,
                image_uri=image_uri,
            )
            working.tokens[key] = token
        else:
            uri = await self._uri_resolver.resolve_uri(
                fact.contract_address,
                fact.token_id,
                fact.block_number,
            )
            if uri and uri != token.uri:
                stale_uri = token.uri
                if stale_uri:
                    await self._propagate_uri_migration(
                        working,
                        stale_uri=stale_uri,
                        trigger_id=token.id,
                        block_height=fact.block_number,
                    )
                token.old_uri = stale_uri
                token.uri = uri
                token.image_uri = await self._uri_resolver.resolve_image(uri)
            elif token.image_uri is None and token.uri:
                token.image_uri = await self._uri_resolver.resolve_image(token.uri)

            self._balance_tracker.adjust(
                working.owners,
                to_owner.id,
                fact.contract_address,
                BalanceDirection.INCREMENT,
            )
            self._balance_tracker.adjust(
                working.owners,
                from_owner.id,
                fact.contract_address,
                BalanceDirection.DECREMENT,
            )
            token.owner = to_owner.id

        return Transfer(
            id=fact.id,
            from_owner=from_owner.id,
            to_owner=to_owner.id,
            token=token.id,
            block_number=fact.block_number,
            timestamp=fact.timestamp,
            transaction_hash=fact.transaction_hash,
        )

    async def _propagate_uri_migration(
        self,
        working: WorkingSet,
        *,
        stale_uri: str,
        trigger_id: str,
        block_height: int,
    ) -> None:
        """
        Re-resolve every other token still pointing at `stale_uri`.

        Candidates come from the working set first, then from the store for
        tokens the batch has not loaded. Each sibling is re-read for its own
        token id.
        """
        siblings: dict[str, Token] = {
            t.id: t for t in working.tokens.values() if t.uri == stale_uri and t.id != trigger_id
        }

        for stored in await self._store.find_tokens_by_uri(stale_uri):
            if stored.id == trigger_id or stored.id in working.tokens:
                continue
            working.tokens[stored.id] = stored
            siblings[stored.id] = stored

        logger.warning(
            "Token URI changed from %s; re-resolving %s sibling tokens (trigger %s)",
            stale_uri,
            len(siblings),
            trigger_id,
        )

        await asyncio.gather(
            *(self._refresh_token(token, block_height) for token in siblings.values())
        )

    async def _refresh_token(self, token: Token, block_height: int) -> None:
        uri = await self._uri_resolver.resolve_uri(token.collection, token.token_id, block_height)
        if not uri:
            logger.warning("Keeping stale URI for %s: re-resolution failed", token.id)
            return
        if uri == token.uri:
            return

        token.old_uri = token.uri
        token.uri = uri
        token.image_uri = await self._uri_resolver.resolve_image(uri)

    # ---------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------

    async def _persist(self, result: BatchResult) -> None:
        await self._store.persist_batch(
            collections=result.collections,
            owners=result.owners,
            tokens=result.tokens,
            transfers=result.transfers,
        )
