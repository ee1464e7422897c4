from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


# -----------------------------------------------------------------------------
# Chain input (what the log source hands to the decoder)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BlockHeader:
    height: int
    timestamp: datetime


@dataclass(frozen=True)
class RawLog:
    """
    One undecoded EVM log item.

    `id` is unique per log on the chain; topics are raw 32-byte values.
    """

    id: str
    address: str
    topics: tuple[bytes, ...]
    data: bytes
    transaction_hash: str


@dataclass(frozen=True)
class BlockLogs:
    header: BlockHeader
    logs: tuple[RawLog, ...]


@dataclass(frozen=True)
class TransferFact:
    """A decoded ERC-721 Transfer, addresses lower-cased."""

    id: str
    from_address: str
    to_address: str
    token_id: int
    timestamp: datetime
    block_number: int
    transaction_hash: str
    contract_address: str


# -----------------------------------------------------------------------------
# Persisted entities
# -----------------------------------------------------------------------------


@dataclass
class Collection:
    """One tracked ERC-721 contract. `id` is the lower-cased address."""

    id: str
    name: str | None = None
    symbol: str | None = None
    total_supply: int = 0


@dataclass
class Owner:
    """
    Account that sent or received a token.

    `collection_balances` only holds collections the owner has touched.
    """

    id: str
    balance: int | None = 0
    collection_balances: dict[str, int] = field(default_factory=dict)


@dataclass
class Token:
    id: str
    token_id: int
    collection: str
    owner: str
    uri: str = ""
    old_uri: str = ""
    image_uri: str | None = None


@dataclass(frozen=True)
class Transfer:
    id: str
    from_owner: str
    to_owner: str
    token: str
    block_number: int
    timestamp: datetime
    transaction_hash: str


def token_key(collection_address: str, token_id: int) -> str:
    """Composite token identity: always keyed by collection address."""
    return f"{collection_address.lower()}-{token_id}"
