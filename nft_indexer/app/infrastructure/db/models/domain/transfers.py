from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from nft_indexer.app.infrastructure.db.db_base import BaseDB


class NftTransfersDB(BaseDB):
    """
    Immutable ledger of ERC-721 Transfer events.

    One row = one log, keyed by "{block:010d}-{log index:06d}".
    """

    __tablename__ = "nft_transfers"
    __table_args__ = (
        PrimaryKeyConstraint("id"),
        Index("ix_nft_transfers_block", "block_number"),
        Index("ix_nft_transfers_token", "token_id"),
        Index("ix_nft_transfers_tx", "transaction_hash"),
        {"schema": "domain"},
    )

    id: Mapped[str] = mapped_column(Text, nullable=False)

    from_id: Mapped[str] = mapped_column(Text, ForeignKey("domain.nft_owners.id"), nullable=False)
    to_id: Mapped[str] = mapped_column(Text, ForeignKey("domain.nft_owners.id"), nullable=False)
    token_id: Mapped[str] = mapped_column(Text, ForeignKey("domain.nft_tokens.id"), nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(Text, nullable=False)
