from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from nft_indexer.app.config import settings


def create_app_async_engine(*, url: str | None = None, echo: bool = False) -> AsyncEngine:
    """
    Single place where the asyncpg-backed engine is built.

    Tasks call this once per run and dispose the engine in `finally`;
    `url` overrides the configured database (e.g. for a scratch database).
    """
    return create_async_engine(
        url or settings.database_url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
    )
