from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from eth_utils import keccak

from nft_indexer.app.domain.entities import BlockHeader, RawLog, TransferFact
from nft_indexer.app.domain.ports.out import TransferEventDecoder
from nft_indexer.app.infrastructure.decoders.abi import (
    ERC721_ABI_PATH,
    event_signature,
    find_event,
    load_abi,
)

logger = logging.getLogger(__name__)


class Erc721TransferDecoder(TransferEventDecoder):
    """
    ABI-based decoder for the ERC-721 Transfer event.

      event Transfer(address indexed from, address indexed to, uint256 indexed tokenId)

    Topics:
      topic0 = keccak("Transfer(address,address,uint256)")
      topic1 = from (address, as 32-byte topic)
      topic2 = to (address, as 32-byte topic)
      topic3 = tokenId (uint256)

    ERC-20 Transfer shares topic0 but carries the amount in `data` and has no
    topic3; such logs are rejected.
    """

    def __init__(self, *, abi_path: Path = ERC721_ABI_PATH, event_name: str = "Transfer") -> None:
        self._event_abi = find_event(load_abi(abi_path), event_name)
        self._signature = event_signature(self._event_abi)
        self._topic0 = keccak(text=self._signature)

        indexed = [i for i in self._event_abi.get("inputs", []) if i.get("indexed") is True]
        if len(indexed) != 3:
            names = [i.get("name") for i in indexed]
            raise ValueError(
                f"Unexpected Transfer indexed inputs count={len(indexed)} names={names}. "
                "Expected 3 indexed inputs: from, to, tokenId."
            )

    @property
    def topic0(self) -> bytes:
        return self._topic0

    @property
    def event_signature(self) -> str:
        return self._signature

    def decode(
        self,
        *,
        topic0: bytes | None,
        topic1: bytes | None,
        topic2: bytes | None,
        topic3: bytes | None,
        data: bytes,
    ) -> dict[str, Any] | None:
        if topic0 is None or bytes(topic0) != self._topic0:
            return None

        if topic1 is None or topic2 is None or topic3 is None:
            return None

        try:
            return {
                "from": self._topic_as_address(topic1),
                "to": self._topic_as_address(topic2),
                "token_id": int.from_bytes(self._as_bytes32(topic3), byteorder="big", signed=False),
            }
        except ValueError:
            return None

    def decode_log(self, log: RawLog, header: BlockHeader) -> TransferFact | None:
        topics = list(log.topics) + [None] * (4 - len(log.topics))
        decoded = self.decode(
            topic0=topics[0],
            topic1=topics[1],
            topic2=topics[2],
            topic3=topics[3],
            data=log.data,
        )
        if decoded is None:
            logger.debug("Dropping undecodable log %s from %s", log.id, log.address)
            return None

        return TransferFact(
            id=log.id,
            from_address=decoded["from"],
            to_address=decoded["to"],
            token_id=decoded["token_id"],
            timestamp=header.timestamp,
            block_number=header.height,
            transaction_hash=log.transaction_hash.lower(),
            contract_address=log.address.lower(),
        )

    # ---------------------------------------------------------------------
    # Topic normalization
    # ---------------------------------------------------------------------

    @staticmethod
    def _as_bytes32(topic: bytes) -> bytes:
        b = bytes(topic)
        if len(b) != 32:
            raise ValueError(f"Expected 32 bytes topic, got len={len(b)}")
        return b

    def _topic_as_address(self, topic: bytes) -> str:
        # Indexed address is left-zero padded to 32 bytes.
        return "0x" + self._as_bytes32(topic)[-20:].hex()
