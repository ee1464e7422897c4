from __future__ import annotations

from sqlalchemy import (
    ForeignKey,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from nft_indexer.app.infrastructure.db.db_base import BaseDB


class NftTokensDB(BaseDB):
    """
    Current state of every ERC-721 token seen in a transfer.

    id = "{collection address}-{token id}". `uri` is the last tokenURI read
    on-chain, `old_uri` the one it replaced, `image_uri` the resolved image
    (NULL until metadata resolution succeeds).
    """

    __tablename__ = "nft_tokens"
    __table_args__ = (
        PrimaryKeyConstraint("id"),
        # URI migration lookups
        Index("ix_nft_tokens_uri", "uri"),
        # Missing-image sweep
        Index(
            "ix_nft_tokens_missing_image",
            "id",
            postgresql_where=text("image_uri IS NULL"),
        ),
        Index("ix_nft_tokens_owner", "owner_id"),
        {"schema": "domain"},
    )

    id: Mapped[str] = mapped_column(Text, nullable=False)

    # uint256
    token_id: Mapped[int] = mapped_column(Numeric(78, 0), nullable=False)

    collection_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("domain.nft_collections.id"),
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("domain.nft_owners.id"),
        nullable=False,
    )

    uri: Mapped[str] = mapped_column(Text, nullable=False, default="")
    old_uri: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
