from __future__ import annotations

import httpx

from nft_indexer.app.application.services.domain.backfill_missing_images import (
    backfill_missing_images,
)
from nft_indexer.app.config import settings
from nft_indexer.app.infrastructure.db.engine import create_app_async_engine
from nft_indexer.app.infrastructure.factories.domain.nft_transfers_indexer_factory import (
    nft_indexer_factory,
)


async def backfill_missing_images_task(
    *,
    chain_id: int,
    limit: int | None = None,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: retry image resolution for stored tokens with a URI but no image.
    """
    _ = chain_id  # single-chain deployment; kept for a uniform task signature
    engine = create_app_async_engine()
    http_client = httpx.AsyncClient(timeout=settings.call_timeout_seconds)
    try:
        components = nft_indexer_factory(
            backend=backend,
            engine=engine,
            http_client=http_client,
        )
        await backfill_missing_images(
            store=components.store,
            uri_resolver=components.uri_resolver,
            limit=limit,
        )
    finally:
        await http_client.aclose()
        await engine.dispose()
