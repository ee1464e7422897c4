"""
Tests for batch reconciliation of ERC-721 transfers into the NFT domain.
"""

from unittest.mock import AsyncMock

import pytest

from nft_indexer.app.domain.entities import Collection, Owner, Token, token_key
from nft_indexer.app.infrastructure.adapters.domain.in_memory_nft_store import InMemoryNftStore

from conftest import (
    ALICE,
    BOB,
    CAROL,
    COLLECTION,
    OTHER_COLLECTION,
    ZERO,
    build_engine,
    make_fact,
    metadata_url,
)

UNREVEALED = "https://meta.example.com/unrevealed.json"


class RecordingStore(InMemoryNftStore):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []
        self.uri_lookups: list[str] = []

    async def find_tokens_by_uri(self, uri):
        self.uri_lookups.append(uri)
        return await super().find_tokens_by_uri(uri)

    async def upsert_collections(self, collections):
        self.writes.append("collections")
        await super().upsert_collections(collections)

    async def upsert_owners(self, owners):
        self.writes.append("owners")
        await super().upsert_owners(owners)

    async def upsert_tokens(self, tokens):
        self.writes.append("tokens")
        await super().upsert_tokens(tokens)

    async def upsert_transfers(self, transfers):
        self.writes.append("transfers")
        await super().upsert_transfers(transfers)


class FlakyTokenWritesStore(InMemoryNftStore):
    """Token writes fail `failures` times, then succeed."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def upsert_tokens(self, tokens):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("connection reset")
        await super().upsert_tokens(tokens)


async def seed_tokens(store, token_ids, *, uri, owner=ALICE):
    await store.upsert_collections([Collection(id=COLLECTION, name="AstarCats", symbol="CAT")])
    await store.upsert_owners([Owner(id=owner, collection_balances={COLLECTION: len(token_ids)})])
    await store.upsert_tokens(
        [
            Token(
                id=token_key(COLLECTION, i),
                token_id=i,
                collection=COLLECTION,
                owner=owner,
                uri=uri,
                old_uri=uri,
                image_uri=None,
            )
            for i in token_ids
        ]
    )


class TestNewTokens:
    @pytest.mark.asyncio
    async def test_mint_creates_token_owner_collection_and_transfer(self, engine, store):
        await engine.process_batch([make_fact("e1", ZERO, ALICE, 1)])

        token = store.tokens[token_key(COLLECTION, 1)]
        assert token.owner == ALICE
        assert token.collection == COLLECTION
        assert token.uri == metadata_url(1)
        assert token.old_uri == metadata_url(1)
        assert token.image_uri == "https://img.example.com/1.png"

        assert store.collections[COLLECTION] == Collection(
            id=COLLECTION, name="AstarCats", symbol="CAT", total_supply=7777
        )
        assert store.owners[ALICE].collection_balances == {COLLECTION: 1}
        assert store.owners[ZERO].collection_balances == {}
        assert store.owners[ZERO].balance == 0

        transfer = store.transfers["e1"]
        assert (transfer.from_owner, transfer.to_owner, transfer.token) == (
            ZERO,
            ALICE,
            token_key(COLLECTION, 1),
        )

    @pytest.mark.asyncio
    async def test_enrichment_failures_do_not_abort_the_batch(self, engine, store, caller):
        caller.script(COLLECTION, "tokenURI", RuntimeError("execution reverted"))

        await engine.process_batch([make_fact("e1", ZERO, ALICE, 1)])

        token = store.tokens[token_key(COLLECTION, 1)]
        assert token.uri == ""
        assert token.image_uri is None
        assert token.owner == ALICE
        assert "e1" in store.transfers

    @pytest.mark.asyncio
    async def test_collection_is_resolved_once(self, engine, caller):
        await engine.process_batch(
            [make_fact("e1", ZERO, ALICE, 1), make_fact("e2", ZERO, BOB, 2, block_number=2_000_001)]
        )
        await engine.process_batch([make_fact("e3", ZERO, CAROL, 3, block_number=2_000_002)])

        assert len(caller.calls_to("name")) == 1
        assert len(caller.calls_to("symbol")) == 1
        assert len(caller.calls_to("totalSupply")) == 1

    @pytest.mark.asyncio
    async def test_collection_resolved_at_first_transfer_height(self, engine, caller):
        await engine.process_batch(
            [
                make_fact("e1", ZERO, ALICE, 1, block_number=2_000_010),
                make_fact("e2", ZERO, BOB, 2, block_number=2_000_020),
            ]
        )

        assert caller.calls_to("name")[0][3] == 2_000_010


class TestOwnership:
    @pytest.mark.asyncio
    async def test_transfers_are_applied_in_order(self, engine, store):
        await engine.process_batch(
            [
                make_fact("e1", ZERO, ALICE, 1),
                make_fact("e2", ALICE, BOB, 1),
                make_fact("e3", BOB, CAROL, 1),
            ]
        )

        assert store.tokens[token_key(COLLECTION, 1)].owner == CAROL
        assert store.owners[ALICE].collection_balances == {COLLECTION: 0}
        assert store.owners[BOB].collection_balances == {COLLECTION: 0}
        assert store.owners[CAROL].collection_balances == {COLLECTION: 1}
        assert set(store.transfers) == {"e1", "e2", "e3"}

    @pytest.mark.asyncio
    async def test_transfer_of_stored_token_moves_it(self, engine, store):
        await seed_tokens(store, [4], uri=metadata_url(4))

        await engine.process_batch([make_fact("e1", ALICE, BOB, 4)])

        assert store.tokens[token_key(COLLECTION, 4)].owner == BOB
        assert store.owners[ALICE].collection_balances == {COLLECTION: 0}
        assert store.owners[BOB].collection_balances == {COLLECTION: 1}

    @pytest.mark.asyncio
    async def test_counters_are_not_clamped(self, engine, store):
        await seed_tokens(store, [1], uri=metadata_url(1), owner=BOB)
        stored_bob = store.owners[BOB]
        stored_bob.collection_balances[COLLECTION] = 0

        await engine.process_batch([make_fact("e1", BOB, ALICE, 1)])

        assert store.owners[BOB].collection_balances[COLLECTION] == -1

    @pytest.mark.asyncio
    async def test_untracked_collections_leave_counters_alone(self, store, caller, uri_resolver, policy):
        engine = build_engine(store, caller, uri_resolver, policy, tracked={OTHER_COLLECTION})

        await engine.process_batch([make_fact("e1", ZERO, ALICE, 1)])

        assert store.owners[ALICE].collection_balances == {}
        assert store.tokens[token_key(COLLECTION, 1)].owner == ALICE

    @pytest.mark.asyncio
    async def test_replaying_a_batch_keeps_identity_sets(self, engine, store):
        batch = [
            make_fact("e1", ZERO, ALICE, 1),
            make_fact("e2", ZERO, ALICE, 2),
            make_fact("e3", ALICE, BOB, 1),
        ]

        await engine.process_batch(batch)
        snapshot = (set(store.tokens), set(store.owners), set(store.collections), set(store.transfers))
        owners_of = {k: t.owner for k, t in store.tokens.items()}

        await engine.process_batch(batch)

        assert (set(store.tokens), set(store.owners), set(store.collections), set(store.transfers)) == snapshot
        assert {k: t.owner for k, t in store.tokens.items()} == owners_of
        assert len(store.transfers) == 3


class TestUriMigration:
    @pytest.mark.asyncio
    async def test_changed_uri_is_propagated_to_siblings(self, caller, uri_resolver, policy):
        store = RecordingStore()
        await seed_tokens(store, [1, 2, 3], uri=UNREVEALED)
        engine = build_engine(store, caller, uri_resolver, policy)

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        assert store.uri_lookups == [UNREVEALED]
        for i in (1, 2, 3):
            token = store.tokens[token_key(COLLECTION, i)]
            assert token.uri == metadata_url(i)
            assert token.old_uri == UNREVEALED
            assert token.image_uri == f"https://img.example.com/{i}.png"

        assert store.tokens[token_key(COLLECTION, 1)].owner == BOB
        assert store.tokens[token_key(COLLECTION, 2)].owner == ALICE

        # Each sibling is re-read for its own token id.
        assert sorted(c[2][0] for c in caller.calls_to("tokenURI")) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_sibling_with_failed_re_resolution_keeps_stale_uri(self, store, caller, uri_resolver, policy):
        await seed_tokens(store, [1, 2, 3], uri=UNREVEALED)
        caller.script(
            COLLECTION,
            "tokenURI",
            lambda token_id: RuntimeError("reverted") if token_id == 3 else metadata_url(token_id),
        )
        engine = build_engine(store, caller, uri_resolver, policy)

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        assert store.tokens[token_key(COLLECTION, 2)].uri == metadata_url(2)
        stuck = store.tokens[token_key(COLLECTION, 3)]
        assert stuck.uri == UNREVEALED
        assert stuck.old_uri == UNREVEALED

    @pytest.mark.asyncio
    async def test_failed_re_resolution_is_not_a_migration(self, caller, uri_resolver, policy):
        store = RecordingStore()
        await seed_tokens(store, [1, 2], uri=UNREVEALED)
        caller.script(COLLECTION, "tokenURI", RuntimeError("reverted"))
        engine = build_engine(store, caller, uri_resolver, policy)

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        token = store.tokens[token_key(COLLECTION, 1)]
        assert token.uri == UNREVEALED
        assert token.owner == BOB
        assert store.uri_lookups == []

    @pytest.mark.asyncio
    async def test_empty_stale_uri_does_not_fan_out(self, caller, uri_resolver, policy):
        store = RecordingStore()
        await seed_tokens(store, [1, 2], uri="")
        engine = build_engine(store, caller, uri_resolver, policy)

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        assert store.uri_lookups == []
        token = store.tokens[token_key(COLLECTION, 1)]
        assert token.uri == metadata_url(1)
        assert token.old_uri == ""
        assert store.tokens[token_key(COLLECTION, 2)].uri == ""

    @pytest.mark.asyncio
    async def test_unchanged_uri_keeps_image(self, engine, store, fetcher):
        await seed_tokens(store, [1], uri=metadata_url(1))
        store.tokens[token_key(COLLECTION, 1)].image_uri = "https://img.example.com/keep.png"

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        assert store.tokens[token_key(COLLECTION, 1)].image_uri == "https://img.example.com/keep.png"
        assert fetcher.requested == []

    @pytest.mark.asyncio
    async def test_missing_image_is_resolved_on_transfer(self, engine, store, fetcher):
        await seed_tokens(store, [1], uri=metadata_url(1))

        await engine.process_batch([make_fact("e1", ALICE, BOB, 1)])

        token = store.tokens[token_key(COLLECTION, 1)]
        assert token.image_uri == "https://img.example.com/1.png"
        assert token.uri == metadata_url(1)
        assert fetcher.requested == [metadata_url(1)]


class TestBatchBoundaries:
    @pytest.mark.asyncio
    async def test_empty_batch_writes_nothing(self, caller, uri_resolver, policy):
        store = RecordingStore()
        engine = build_engine(store, caller, uri_resolver, policy)

        result = await engine.process_batch([])

        assert result.transfers == []
        assert store.writes == []
        assert caller.calls == []

    @pytest.mark.asyncio
    async def test_entities_are_persisted_in_dependency_order(self, caller, uri_resolver, policy):
        store = RecordingStore()
        engine = build_engine(store, caller, uri_resolver, policy)

        await engine.process_batch([make_fact("e1", ZERO, ALICE, 1)])

        assert store.writes == ["collections", "owners", "tokens", "transfers"]

    @pytest.mark.asyncio
    async def test_store_failures_propagate(self, engine, store):
        store.upsert_tokens = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(RuntimeError, match="connection reset"):
            await engine.process_batch([make_fact("e1", ZERO, ALICE, 1)])

        assert store.transfers == {}
        assert store.owners == {}
        assert store.collections == {}

    @pytest.mark.asyncio
    async def test_retried_batch_after_failed_write_counts_once(self, caller, uri_resolver, policy):
        store = FlakyTokenWritesStore(failures=1)
        engine = build_engine(store, caller, uri_resolver, policy)
        batch = [make_fact("e1", ZERO, ALICE, 1), make_fact("e2", ALICE, BOB, 1)]

        with pytest.raises(RuntimeError, match="connection reset"):
            await engine.process_batch(batch)

        assert store.owners == {}
        assert store.tokens == {}

        await engine.process_batch(batch)

        assert store.owners[BOB].collection_balances == {COLLECTION: 1}
        assert store.owners[ALICE].collection_balances == {COLLECTION: 0}
        assert store.tokens[token_key(COLLECTION, 1)].owner == BOB

    @pytest.mark.asyncio
    async def test_result_lists_everything_touched(self, engine):
        result = await engine.process_batch(
            [make_fact("e1", ZERO, ALICE, 1), make_fact("e2", ALICE, BOB, 1)]
        )

        assert [t.id for t in result.transfers] == ["e1", "e2"]
        assert {o.id for o in result.owners} == {ZERO, ALICE, BOB}
        assert [t.id for t in result.tokens] == [token_key(COLLECTION, 1)]
        assert [c.id for c in result.collections] == [COLLECTION]
