from __future__ import annotations

import logging

from nft_indexer.app.application.services.domain.uri_resolver import URIResolver
from nft_indexer.app.domain.entities import Token
from nft_indexer.app.domain.ports.out import NftStore

logger = logging.getLogger(__name__)


async def backfill_missing_images(
    *,
    store: NftStore,
    uri_resolver: URIResolver,
    limit: int | None = None,
) -> int:
    """
    Maintenance sweep: retry image resolution for stored tokens that have a
    URI but no image. Only tokens whose image was found are written back.

    Returns the number of tokens updated.
    """
    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive when provided")

    candidates = await store.find_tokens_missing_image(limit=limit)

    updated: list[Token] = []
    for token in candidates:
        if not token.uri:
            continue
        image_uri = await uri_resolver.resolve_image(token.uri)
        if image_uri is None:
            continue
        token.image_uri = image_uri
        updated.append(token)

    if updated:
        await store.upsert_tokens(updated)

    logger.info(
        "Image backfill updated %s of %s tokens",
        len(updated),
        len(candidates),
    )
    return len(updated)
