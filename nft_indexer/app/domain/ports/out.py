from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Protocol, Sequence

from nft_indexer.app.domain.entities import (
    BlockHeader,
    BlockLogs,
    Collection,
    Owner,
    RawLog,
    Token,
    Transfer,
    TransferFact,
)


class NftTransfersIndexer(Protocol):
    """
    Port for indexing ERC-721 transfers into the domain layer.

    Implementations stream blocks in increasing order and reconcile each batch
    of transfers into collections, owners, tokens and transfers.
    """

    async def index_transfers_for_block_range(
        self,
        *,
        chain_id: int,
        from_block: int,
        to_block: int,
    ) -> None:
        ...


class TransferLogSource(Protocol):
    """
    Chain data source.

    Yields batches of blocks (each batch a list of BlockLogs in chain order)
    holding only logs whose topic0 is the ERC-721 Transfer signature.
    """

    def iter_block_batches(
        self,
        *,
        from_block: int,
        to_block: int,
    ) -> AsyncIterator[list[BlockLogs]]:
        ...

    async def head_block(self) -> int:
        ...


class TransferEventDecoder(Protocol):
    def decode(
        self,
        *,
        topic0: bytes | None,
        topic1: bytes | None,
        topic2: bytes | None,
        topic3: bytes | None,
        data: bytes,
    ) -> dict[str, Any] | None:
        """
        Decode an EVM log (topics + data) into a dict of typed fields.

        Return:
          - dict[str, Any] for decoded event fields
          - None if the log is not decodable / not the expected event
        """
        ...

    def decode_log(self, log: RawLog, header: BlockHeader) -> TransferFact | None:
        ...


class ContractCaller(Protocol):
    """
    On-chain read call capability.

    Implementations raise on revert, transport error or undecodable output;
    retries and timeouts are applied by the caller.
    """

    async def call(
        self,
        *,
        contract_address: str,
        method: str,
        args: Sequence[Any] = (),
        block_height: int | None = None,
    ) -> Any:
        ...


class TokenMetadataFetcher(Protocol):
    """Off-chain fetch capability: GET a URL and return its decoded JSON body."""

    async def get_json(self, url: str) -> Any:
        ...


class NftStore(Protocol):
    """
    Persistent store for the NFT domain.

    Reads return detached records; writes are bulk upserts keyed by identity.
    Any exception raised here is fatal for the current batch.
    """

    async def get_collection(self, address: str) -> Collection | None: ...

    async def find_collections(self, ids: Iterable[str]) -> list[Collection]: ...

    async def find_owners(self, ids: Iterable[str]) -> list[Owner]: ...

    async def find_tokens(self, ids: Iterable[str]) -> list[Token]: ...

    async def find_tokens_by_uri(self, uri: str) -> list[Token]: ...

    async def find_tokens_missing_image(self, *, limit: int | None = None) -> list[Token]: ...

    async def last_indexed_block(self) -> int | None: ...

    async def upsert_collections(self, collections: Sequence[Collection]) -> None: ...

    async def upsert_owners(self, owners: Sequence[Owner]) -> None: ...

    async def upsert_tokens(self, tokens: Sequence[Token]) -> None: ...

    async def upsert_transfers(self, transfers: Sequence[Transfer]) -> None: ...

    async def persist_batch(
        self,
        *,
        collections: Sequence[Collection],
        owners: Sequence[Owner],
        tokens: Sequence[Token],
        transfers: Sequence[Transfer],
    ) -> None:
        """
        Write one reconciled batch atomically, in dependency order
        (collections, owners, tokens, transfers). Either every write lands
        or none does.
        """
        ...
