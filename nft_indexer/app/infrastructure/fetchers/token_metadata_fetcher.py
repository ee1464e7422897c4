from __future__ import annotations

from typing import Any

import httpx

from nft_indexer.app.domain.ports.out import TokenMetadataFetcher


class HttpxTokenMetadataFetcher(TokenMetadataFetcher):
    """
    Off-chain token metadata fetcher using a shared httpx.AsyncClient.

    Raises on transport errors, non-2xx responses and invalid JSON;
    retries/timeouts are applied by the caller.
    """

    def __init__(self, *, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get_json(self, url: str) -> Any:
        response = await self._client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.json()

