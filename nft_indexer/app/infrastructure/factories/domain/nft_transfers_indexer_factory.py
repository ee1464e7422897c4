from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine
from web3 import AsyncHTTPProvider, AsyncWeb3

from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.application.services.domain.balance_tracker import BalanceTracker
from nft_indexer.app.application.services.domain.contract_classifier import ContractClassifier
from nft_indexer.app.application.services.domain.contract_introspector import ContractIntrospector
from nft_indexer.app.application.services.domain.nft_transfers_pipeline import NftTransfersPipeline
from nft_indexer.app.application.services.domain.reconciliation_engine import ReconciliationEngine
from nft_indexer.app.application.services.domain.uri_resolver import URIResolver
from nft_indexer.app.config import settings
from nft_indexer.app.domain.ports.out import NftStore, TransferLogSource
from nft_indexer.app.infrastructure.adapters.chain.web3_transfer_log_source import (
    Web3TransferLogSource,
)
from nft_indexer.app.infrastructure.adapters.domain.in_memory_nft_store import InMemoryNftStore
from nft_indexer.app.infrastructure.adapters.domain.sqlalchemy_nft_store import SqlAlchemyNftStore
from nft_indexer.app.infrastructure.decoders.erc721.transfer_decoder import Erc721TransferDecoder
from nft_indexer.app.infrastructure.fetchers.erc721_contract_caller import Web3Erc721ContractCaller
from nft_indexer.app.infrastructure.fetchers.token_metadata_fetcher import (
    HttpxTokenMetadataFetcher,
)


@dataclass(frozen=True)
class NftIndexerComponents:
    store: NftStore
    source: TransferLogSource
    uri_resolver: URIResolver
    pipeline: NftTransfersPipeline


NftIndexerFactory = Callable[[AsyncEngine, httpx.AsyncClient], NftIndexerComponents]

_NFT_INDEXER_REGISTRY: Dict[str, NftIndexerFactory] = {}


def _make_components(store: NftStore, http_client: httpx.AsyncClient) -> NftIndexerComponents:
    """
    Wire dependencies around a given store:
    - AsyncWeb3 provider (RPC URL from settings)
    - ERC-721 Transfer decoder + eth_getLogs source filtered by its topic0
    - contract caller (eth_call) and httpx metadata fetcher, both behind one CallPolicy
    - classifier / introspector / URI resolver / balance tracker
    - reconciliation engine and the batch pipeline driving it
    """
    w3 = AsyncWeb3(
        AsyncHTTPProvider(
            settings.rpc_url,
            request_kwargs={"timeout": settings.rpc_request_timeout},
        )
    )
    policy = CallPolicy(
        timeout=settings.call_timeout_seconds,
        attempts=settings.call_attempts,
        backoff=settings.call_backoff_seconds,
    )

    decoder = Erc721TransferDecoder()
    caller = Web3Erc721ContractCaller(w3=w3)
    fetcher = HttpxTokenMetadataFetcher(client=http_client)

    source = Web3TransferLogSource(
        w3=w3,
        topic0=decoder.topic0,
        policy=policy,
        batch_size=settings.block_batch_size,
        addresses=settings.nft_contract_addresses,
    )
    uri_resolver = URIResolver(
        caller=caller,
        fetcher=fetcher,
        policy=policy,
        min_block_height=settings.min_call_block_height,
        gateway_host=settings.ipfs_gateway_host,
    )
    engine = ReconciliationEngine(
        store=store,
        introspector=ContractIntrospector(
            caller=caller,
            store=store,
            policy=policy,
            min_block_height=settings.min_call_block_height,
        ),
        uri_resolver=uri_resolver,
        balance_tracker=BalanceTracker(settings.tracked_balance_collections),
    )
    pipeline = NftTransfersPipeline(
        source=source,
        decoder=decoder,
        classifier=ContractClassifier(caller=caller, store=store, policy=policy),
        engine=engine,
        store=store,
        uri_resolver=uri_resolver,
        image_backfill_interval=settings.image_backfill_interval,
    )

    return NftIndexerComponents(
        store=store,
        source=source,
        uri_resolver=uri_resolver,
        pipeline=pipeline,
    )


# Register backends
_NFT_INDEXER_REGISTRY["sqlalchemy"] = lambda engine, http_client: _make_components(
    SqlAlchemyNftStore(engine),
    http_client,
)
_NFT_INDEXER_REGISTRY["memory"] = lambda engine, http_client: _make_components(
    InMemoryNftStore(),
    http_client,
)


def nft_indexer_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    http_client: httpx.AsyncClient,
) -> NftIndexerComponents:
    """
    Create the NFT indexing components for the given store backend.

    "sqlalchemy" persists into domain.nft_*; "memory" keeps everything in
    process (dry runs).
    """
    try:
        factory = _NFT_INDEXER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported NFT indexer backend: {backend!r}")

    return factory(engine, http_client)
