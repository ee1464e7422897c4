from __future__ import annotations

import httpx

from nft_indexer.app.application.services.block_bounds import resolve_block_bounds
from nft_indexer.app.application.services.domain.index_nft_transfers_for_block_range import (
    BlockRange,
    index_nft_transfers_for_block_range,
)
from nft_indexer.app.config import settings
from nft_indexer.app.infrastructure.db.engine import create_app_async_engine
from nft_indexer.app.infrastructure.factories.domain.nft_transfers_indexer_factory import (
    nft_indexer_factory,
)


async def index_nft_transfers_task(
    *,
    chain_id: int,
    from_block: int | str,
    to_block: int | str,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: index ERC-721 transfers into domain.nft_* for a given block range.

    from_block / to_block can be:
    - int (a specific block number),
    - "earliest" (START_BLOCK), "resume" (one past the last stored transfer),
    - "latest" (the current chain head).
    """
    engine = create_app_async_engine()
    http_client = httpx.AsyncClient(timeout=settings.call_timeout_seconds)
    try:
        components = nft_indexer_factory(
            backend=backend,
            engine=engine,
            http_client=http_client,
        )

        resolved_from_block, resolved_to_block = await resolve_block_bounds(
            store=components.store,
            source=components.source,
            from_block=from_block,
            to_block=to_block,
            start_block=settings.start_block,
        )

        await index_nft_transfers_for_block_range(
            indexer=components.pipeline,
            chain_id=chain_id,
            block_range=BlockRange(
                from_block=resolved_from_block,
                to_block=resolved_to_block,
            ),
        )
    finally:
        await http_client.aclose()
        await engine.dispose()
