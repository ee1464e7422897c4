from __future__ import annotations

import logging
from typing import Sequence

from nft_indexer.app.application.services.domain.backfill_missing_images import (
    backfill_missing_images,
)
from nft_indexer.app.application.services.domain.contract_classifier import ContractClassifier
from nft_indexer.app.application.services.domain.reconciliation_engine import ReconciliationEngine
from nft_indexer.app.application.services.domain.uri_resolver import URIResolver
from nft_indexer.app.domain.entities import BlockLogs, TransferFact
from nft_indexer.app.domain.ports.out import NftStore, TransferEventDecoder, TransferLogSource

logger = logging.getLogger(__name__)


class NftTransfersPipeline:
    """
    NftTransfersIndexer implementation.

    Strategy:
    - pull batches of blocks from the log source in increasing block order,
    - decode each log into a TransferFact (undecodable logs are dropped),
    - classify every distinct emitting contract once per batch and drop
      transfers from contracts that are not ERC-721,
    - reconcile the surviving transfers (one batch at a time),
    - every `image_backfill_interval` batches, sweep tokens with no image.
    """

    def __init__(
        self,
        *,
        source: TransferLogSource,
        decoder: TransferEventDecoder,
        classifier: ContractClassifier,
        engine: ReconciliationEngine,
        store: NftStore,
        uri_resolver: URIResolver,
        image_backfill_interval: int = 0,
    ) -> None:
        self._source = source
        self._decoder = decoder
        self._classifier = classifier
        self._engine = engine
        self._store = store
        self._uri_resolver = uri_resolver
        self._image_backfill_interval = image_backfill_interval

    async def index_transfers_for_block_range(
        self,
        *,
        chain_id: int,
        from_block: int,
        to_block: int,
    ) -> None:
        logger.info(
            "Starting NFT transfers indexing",
            extra={"chain_id": chain_id, "from_block": from_block, "to_block": to_block},
        )

        batch_idx = 0
        total_transfers = 0

        async for blocks in self._source.iter_block_batches(
            from_block=from_block,
            to_block=to_block,
        ):
            batch_idx += 1

            facts = self._decode(blocks)
            accepted = await self._keep_erc721(facts)
            result = await self._engine.process_batch(accepted)
            total_transfers += len(result.transfers)

            if blocks:
                logger.info(
                    "Processed batch %s: blocks %s-%s, %s logs decoded, %s transfers indexed",
                    batch_idx,
                    blocks[0].header.height,
                    blocks[-1].header.height,
                    len(facts),
                    len(result.transfers),
                )

            if self._image_backfill_interval > 0 and batch_idx % self._image_backfill_interval == 0:
                await backfill_missing_images(store=self._store, uri_resolver=self._uri_resolver)

        logger.info(
            "Finished NFT transfers indexing",
            extra={"chain_id": chain_id, "batches": batch_idx, "transfers": total_transfers},
        )

    def _decode(self, blocks: Sequence[BlockLogs]) -> list[TransferFact]:
        facts: list[TransferFact] = []
        for block in blocks:
            for log in block.logs:
                fact = self._decoder.decode_log(log, block.header)
                if fact is not None:
                    facts.append(fact)
        return facts

    async def _keep_erc721(self, facts: list[TransferFact]) -> list[TransferFact]:
        first_seen: dict[str, int] = {}
        for fact in facts:
            first_seen.setdefault(fact.contract_address, fact.block_number)

        verdicts: dict[str, bool] = {}
        for address, height in first_seen.items():
            verdicts[address] = await self._classifier.classify(address, height)

        rejected = [addr for addr, ok in verdicts.items() if not ok]
        if rejected:
            logger.debug("Skipping transfers from non-ERC-721 contracts: %s", rejected)

        return [f for f in facts if verdicts[f.contract_address]]
