from __future__ import annotations

from sqlalchemy import Numeric, PrimaryKeyConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column

from nft_indexer.app.infrastructure.db.db_base import BaseDB


class NftCollectionsDB(BaseDB):
    """
    Registry of tracked ERC-721 contracts.

    One row = one contract that passed classification. Name/symbol/supply are
    best-effort and may stay NULL when the on-chain reads failed.
    """

    __tablename__ = "nft_collections"
    __table_args__ = (
        PrimaryKeyConstraint("id"),
        {"schema": "domain"},
    )

    # Lower-cased 0x-prefixed contract address
    id: Mapped[str] = mapped_column(Text, nullable=False)

    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    symbol: Mapped[str | None] = mapped_column(Text, nullable=True)

    # uint256
    total_supply: Mapped[int] = mapped_column(Numeric(78, 0), nullable=False, default=0)
