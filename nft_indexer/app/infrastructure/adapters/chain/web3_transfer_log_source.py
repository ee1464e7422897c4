from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import groupby
from typing import Any, AsyncIterator, Sequence

from web3 import AsyncWeb3

from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.domain.entities import BlockHeader, BlockLogs, RawLog
from nft_indexer.app.domain.ports.out import TransferLogSource

logger = logging.getLogger(__name__)

_DEFAULT_BLOCK_BATCH_SIZE = 500


def _hex(value: Any) -> str:
    # HexBytes.hex() dropped the 0x prefix in hexbytes 1.x; normalize.
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(value).hex()


def log_id(block_number: int, log_index: int) -> str:
    return f"{block_number:010d}-{log_index:06d}"


class Web3TransferLogSource(TransferLogSource):
    """
    Chain data source over eth_getLogs.

    Strategy:
    - split [from_block, to_block] into windows of `batch_size` blocks,
    - fetch logs filtered by topic0 (and by emitting address when an
      allow-list is configured),
    - group logs by block in (blockNumber, logIndex) order and attach each
      block's timestamp.
    """

    def __init__(
        self,
        *,
        w3: AsyncWeb3,
        topic0: bytes,
        policy: CallPolicy,
        batch_size: int = _DEFAULT_BLOCK_BATCH_SIZE,
        addresses: Sequence[str] = (),
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._w3 = w3
        self._topic0 = topic0
        self._policy = policy
        self._batch_size = batch_size
        self._addresses = [w3.to_checksum_address(a) for a in addresses]

    async def head_block(self) -> int:
        return await self._policy.run(lambda: self._w3.eth.block_number, label="eth_blockNumber")

    async def iter_block_batches(
        self,
        *,
        from_block: int,
        to_block: int,
    ) -> AsyncIterator[list[BlockLogs]]:
        for start in range(from_block, to_block + 1, self._batch_size):
            end = min(start + self._batch_size - 1, to_block)

            logs = await self._policy.run(
                lambda s=start, e=end: self._w3.eth.get_logs(self._filter_params(s, e)),
                label=f"eth_getLogs({start}-{end})",
            )
            yield await self._group_by_block(logs)

    def _filter_params(self, start: int, end: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "fromBlock": start,
            "toBlock": end,
            "topics": ["0x" + self._topic0.hex()],
        }
        if self._addresses:
            params["address"] = self._addresses
        return params

    async def _group_by_block(self, logs: Sequence[Any]) -> list[BlockLogs]:
        live = [log for log in logs if not log.get("removed", False)]
        live.sort(key=lambda log: (log["blockNumber"], log["logIndex"]))

        blocks: list[BlockLogs] = []
        for block_number, items in groupby(live, key=lambda log: log["blockNumber"]):
            header = BlockHeader(
                height=block_number,
                timestamp=await self._block_timestamp(block_number),
            )
            raw_logs = tuple(
                RawLog(
                    id=log_id(block_number, log["logIndex"]),
                    address=log["address"].lower(),
                    topics=tuple(bytes(t) for t in log["topics"]),
                    data=bytes(log["data"]),
                    transaction_hash=_hex(log["transactionHash"]),
                )
                for log in items
            )
            blocks.append(BlockLogs(header=header, logs=raw_logs))

        return blocks

    async def _block_timestamp(self, block_number: int) -> datetime:
        block = await self._policy.run(
            lambda: self._w3.eth.get_block(block_number),
            label=f"eth_getBlockByNumber({block_number})",
        )
        return datetime.fromtimestamp(block["timestamp"], tz=timezone.utc)
