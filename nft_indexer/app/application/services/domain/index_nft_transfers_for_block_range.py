from __future__ import annotations

from dataclasses import dataclass

from nft_indexer.app.domain.ports.out import NftTransfersIndexer


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValueError("Block numbers must be non-negative")
        if self.from_block > self.to_block:
            raise ValueError("from_block must be <= to_block")


async def index_nft_transfers_for_block_range(
    *,
    indexer: NftTransfersIndexer,
    chain_id: int,
    block_range: BlockRange,
) -> None:
    """
    Application-level use case for indexing ERC-721 transfers.

    Orchestrates validation and calls the underlying indexer port.
    """
    if chain_id <= 0:
        raise ValueError("chain_id must be positive")
    block_range.validate()
    await indexer.index_transfers_for_block_range(
        chain_id=chain_id,
        from_block=block_range.from_block,
        to_block=block_range.to_block,
    )
