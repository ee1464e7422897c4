"""
Shared fixtures and fakes for the NFT indexer test suite.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence

import pytest

from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.application.services.domain.balance_tracker import BalanceTracker
from nft_indexer.app.application.services.domain.contract_introspector import ContractIntrospector
from nft_indexer.app.application.services.domain.reconciliation_engine import ReconciliationEngine
from nft_indexer.app.application.services.domain.uri_resolver import URIResolver
from nft_indexer.app.domain.entities import BlockLogs, TransferFact
from nft_indexer.app.infrastructure.adapters.domain.in_memory_nft_store import InMemoryNftStore

COLLECTION = "0x8b5d62f396ca3c6cf19803234685e693733f9779"
OTHER_COLLECTION = "0xd59fc6bfd9732ab19b03664a45dc29b8421bda9a"
ZERO = "0x" + "00" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20

BLOCK_TS = datetime(2022, 6, 1, tzinfo=timezone.utc)


class FakeContractCaller:
    """
    Scripted ContractCaller.

    Responses are keyed by (contract address, method). A response may be a
    plain value, an exception instance (raised), or a callable receiving the
    call args and returning either of those. Unscripted calls revert.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, tuple[Any, ...], int | None]] = []

    def script(self, address: str, method: str, response: Any) -> None:
        self.responses[(address, method)] = response

    def calls_to(self, method: str) -> list[tuple[str, str, tuple[Any, ...], int | None]]:
        return [c for c in self.calls if c[1] == method]

    async def call(
        self,
        *,
        contract_address: str,
        method: str,
        args: Sequence[Any] = (),
        block_height: int | None = None,
    ) -> Any:
        self.calls.append((contract_address, method, tuple(args), block_height))
        try:
            response = self.responses[(contract_address, method)]
        except KeyError:
            raise RuntimeError(f"execution reverted: {method}")

        if callable(response) and not isinstance(response, BaseException):
            response = response(*args)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeMetadataFetcher:
    """Serves JSON documents by URL; unknown URLs fail like a 404."""

    def __init__(self, documents: dict[str, Any] | None = None) -> None:
        self.documents: dict[str, Any] = dict(documents or {})
        self.requested: list[str] = []

    async def get_json(self, url: str) -> Any:
        self.requested.append(url)
        if url not in self.documents:
            raise RuntimeError(f"404 Not Found: {url}")
        document = self.documents[url]
        if isinstance(document, BaseException):
            raise document
        return document


class FakeLogSource:
    """TransferLogSource replaying pre-built batches of blocks."""

    def __init__(self, batches: list[list[BlockLogs]], head: int = 0) -> None:
        self.batches = batches
        self.head = head
        self.requested_ranges: list[tuple[int, int]] = []

    async def head_block(self) -> int:
        return self.head

    async def iter_block_batches(self, *, from_block: int, to_block: int) -> AsyncIterator[list[BlockLogs]]:
        self.requested_ranges.append((from_block, to_block))
        for batch in self.batches:
            yield batch


def make_fact(
    event_id: str,
    from_address: str,
    to_address: str,
    token_id: int,
    *,
    block_number: int = 2_000_000,
    contract_address: str = COLLECTION,
) -> TransferFact:
    return TransferFact(
        id=event_id,
        from_address=from_address,
        to_address=to_address,
        token_id=token_id,
        timestamp=BLOCK_TS,
        block_number=block_number,
        transaction_hash="0x" + "ab" * 32,
        contract_address=contract_address,
    )


def metadata_url(token_id: int) -> str:
    return f"https://meta.example.com/v1/{token_id}.json"


def script_erc721_collection(caller: FakeContractCaller, address: str = COLLECTION) -> None:
    """Script a well-behaved collection: metadata, tokenURI, ERC-165/721 checks."""
    caller.script(address, "name", "AstarCats")
    caller.script(address, "symbol", "CAT")
    caller.script(address, "totalSupply", 7777)
    caller.script(address, "tokenURI", metadata_url)
    caller.script(address, "supportsInterface", lambda interface_id: True)
    caller.script(address, "balanceOf", RuntimeError("execution reverted: zero address"))


@pytest.fixture
def policy() -> CallPolicy:
    return CallPolicy(timeout=0.5, attempts=3)


@pytest.fixture
def store() -> InMemoryNftStore:
    return InMemoryNftStore()


@pytest.fixture
def caller() -> FakeContractCaller:
    fake = FakeContractCaller()
    script_erc721_collection(fake)
    return fake


@pytest.fixture
def fetcher() -> FakeMetadataFetcher:
    return FakeMetadataFetcher(
        {metadata_url(i): {"image": f"https://img.example.com/{i}.png"} for i in range(1, 10)}
    )


@pytest.fixture
def uri_resolver(caller, fetcher, policy) -> URIResolver:
    return URIResolver(
        caller=caller,
        fetcher=fetcher,
        policy=policy,
        min_block_height=1_789_333,
    )


def build_engine(store, caller, uri_resolver, policy, tracked=None) -> ReconciliationEngine:
    return ReconciliationEngine(
        store=store,
        introspector=ContractIntrospector(
            caller=caller,
            store=store,
            policy=policy,
            min_block_height=1_789_333,
        ),
        uri_resolver=uri_resolver,
        balance_tracker=BalanceTracker(tracked),
    )


@pytest.fixture
def engine(store, caller, uri_resolver, policy) -> ReconciliationEngine:
    return build_engine(store, caller, uri_resolver, policy)
