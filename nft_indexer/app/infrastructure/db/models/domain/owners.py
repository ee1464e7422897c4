from __future__ import annotations

from sqlalchemy import Numeric, PrimaryKeyConstraint, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nft_indexer.app.infrastructure.db.db_base import BaseDB


class NftOwnersDB(BaseDB):
    """
    Accounts seen as sender or receiver of an ERC-721 transfer.

    `collection_balances` maps collection address -> counter and only holds
    collections the owner has touched.
    """

    __tablename__ = "nft_owners"
    __table_args__ = (
        PrimaryKeyConstraint("id"),
        {"schema": "domain"},
    )

    id: Mapped[str] = mapped_column(Text, nullable=False)

    # Legacy aggregate, kept for API compatibility
    balance: Mapped[int | None] = mapped_column(Numeric(78, 0), nullable=True)

    collection_balances: Mapped[dict[str, int]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
