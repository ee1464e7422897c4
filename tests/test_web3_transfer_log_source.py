"""
Tests for the eth_getLogs block source, against a fake AsyncWeb3.
"""

from datetime import datetime, timezone

import pytest
from web3 import Web3

from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.infrastructure.adapters.chain.web3_transfer_log_source import (
    Web3TransferLogSource,
    log_id,
)

TOPIC0 = bytes.fromhex("ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")


class FakeEth:
    def __init__(self, logs, head=0):
        self.logs = logs
        self.head = head
        self.filters = []
        self.blocks_requested = []

    @property
    async def block_number(self):
        return self.head

    async def get_logs(self, params):
        self.filters.append(params)
        return [log for log in self.logs if params["fromBlock"] <= log["blockNumber"] <= params["toBlock"]]

    async def get_block(self, number):
        self.blocks_requested.append(number)
        return {"timestamp": 1_650_000_000 + number}


class FakeWeb3:
    def __init__(self, eth):
        self.eth = eth

    @staticmethod
    def to_checksum_address(value):
        return Web3.to_checksum_address(value)


def rpc_log(block_number, log_index, *, removed=False):
    return {
        "blockNumber": block_number,
        "logIndex": log_index,
        "address": "0x8B5D62F396CA3C6CF19803234685E693733F9779",
        "topics": [TOPIC0, bytes(32), bytes(32), (1).to_bytes(32, "big")],
        "data": b"",
        "transactionHash": bytes([block_number % 256]) * 32,
        "removed": removed,
    }


def make_source(eth, **kwargs):
    return Web3TransferLogSource(
        w3=FakeWeb3(eth),
        topic0=TOPIC0,
        policy=CallPolicy(timeout=1.0, attempts=1),
        **kwargs,
    )


async def collect(source, from_block, to_block):
    return [batch async for batch in source.iter_block_batches(from_block=from_block, to_block=to_block)]


class TestWeb3TransferLogSource:
    @pytest.mark.asyncio
    async def test_range_is_split_into_windows(self):
        eth = FakeEth([rpc_log(10, 0), rpc_log(14, 0)])
        source = make_source(eth, batch_size=3)

        batches = await collect(source, 10, 15)

        assert [(f["fromBlock"], f["toBlock"]) for f in eth.filters] == [(10, 12), (13, 15)]
        assert [[b.header.height for b in batch] for batch in batches] == [[10], [14]]
        assert eth.filters[0]["topics"] == ["0x" + TOPIC0.hex()]
        assert "address" not in eth.filters[0]

    @pytest.mark.asyncio
    async def test_logs_are_grouped_in_chain_order(self):
        eth = FakeEth([rpc_log(11, 3), rpc_log(10, 7), rpc_log(11, 1), rpc_log(10, 2, removed=True)])
        source = make_source(eth)

        (batch,) = await collect(source, 10, 11)

        assert [b.header.height for b in batch] == [10, 11]
        assert [log.id for log in batch[0].logs] == [log_id(10, 7)]
        assert [log.id for log in batch[1].logs] == [log_id(11, 1), log_id(11, 3)]
        assert batch[0].header.timestamp == datetime.fromtimestamp(1_650_000_010, tz=timezone.utc)

        raw = batch[1].logs[0]
        assert raw.address == "0x8b5d62f396ca3c6cf19803234685e693733f9779"
        assert raw.topics[0] == TOPIC0
        assert raw.transaction_hash == "0x" + "0b" * 32

    @pytest.mark.asyncio
    async def test_address_allow_list_is_checksummed(self):
        eth = FakeEth([])
        source = make_source(eth, addresses=["0x8b5d62f396ca3c6cf19803234685e693733f9779"])

        await collect(source, 1, 1)

        assert eth.filters[0]["address"] == [Web3.to_checksum_address("0x8b5d62f396ca3c6cf19803234685e693733f9779")]
        assert eth.blocks_requested == []

    @pytest.mark.asyncio
    async def test_head_block(self):
        source = make_source(FakeEth([], head=4_321_000))
        assert await source.head_block() == 4_321_000

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            make_source(FakeEth([]), batch_size=0)
