from __future__ import annotations

import logging
from typing import Any

from multiformats import CID

from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.domain.ports.out import ContractCaller, TokenMetadataFetcher

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_HOST = "nftstorage.link"

_IPFS_SCHEME = "ipfs://"
_ARWEAVE_GATEWAY = "https://arweave.net"
_PINATA_GATEWAY = "gateway.pinata.cloud"


def _longest_segment(segments: list[str]) -> str:
    # Later segments win ties.
    longest = segments[0]
    for segment in segments[1:]:
        if len(segment) >= len(longest):
            longest = segment
    return longest


def parse_cid(candidate: str) -> CID | None:
    try:
        return CID.decode(candidate)
    except Exception:
        return None


def normalize_locator(uri: str, *, gateway_host: str = DEFAULT_GATEWAY_HOST) -> str:
    """
    Turn a token URI into a fetchable locator.

    The longest `/`-separated segment is the content-identifier candidate.
    If it is not a valid CID the URI is returned unchanged. Otherwise:
      - ipfs://...                  -> https://<cidv1>.ipfs.<gateway_host>/<last segment>
      - https://arweave.net/...     -> unchanged
      - .../gateway.pinata.cloud/... -> same gateway rewrite as ipfs://
      - anything else               -> unchanged
    """
    segments = uri.split("/")
    cid = parse_cid(_longest_segment(segments))
    if cid is None:
        return uri

    if _IPFS_SCHEME in uri or _PINATA_GATEWAY in uri:
        canonical = CID("base32", 1, cid.codec, cid.digest)
        return f"https://{canonical}.ipfs.{gateway_host}/{segments[-1]}"

    if _ARWEAVE_GATEWAY in uri:
        return uri

    return uri


class URIResolver:
    """
    Resolves a token's metadata URI (tokenURI on-chain) and its image
    (off-chain JSON). Neither operation raises: failures are logged and
    degrade to "" / None.
    """

    def __init__(
        self,
        *,
        caller: ContractCaller,
        fetcher: TokenMetadataFetcher,
        policy: CallPolicy,
        min_block_height: int = 0,
        gateway_host: str = DEFAULT_GATEWAY_HOST,
    ) -> None:
        self._caller = caller
        self._fetcher = fetcher
        self._policy = policy
        self._min_block_height = min_block_height
        self._gateway_host = gateway_host

    async def resolve_uri(self, contract_address: str, token_id: int, block_height: int) -> str:
        height = max(block_height, self._min_block_height)
        try:
            uri = await self._policy.run(
                lambda: self._caller.call(
                    contract_address=contract_address,
                    method="tokenURI",
                    args=(token_id,),
                    block_height=height,
                ),
                label=f"tokenURI({contract_address}, {token_id})",
            )
        except Exception as exc:
            logger.error(
                "Error resolving tokenURI for %s #%s at %s: %r",
                contract_address,
                token_id,
                height,
                exc,
            )
            return ""

        if not isinstance(uri, str):
            logger.error("tokenURI for %s #%s is not a string: %r", contract_address, token_id, uri)
            return ""
        return uri

    def normalize_locator(self, uri: str) -> str:
        return normalize_locator(uri, gateway_host=self._gateway_host)

    async def resolve_image(self, uri: str) -> str | None:
        if not uri:
            return None

        locator = self.normalize_locator(uri)
        try:
            data: Any = await self._policy.run(
                lambda: self._fetcher.get_json(locator),
                label=f"GET {locator}",
            )
        except Exception as exc:
            logger.error("Fetching image metadata failed: %s - %r", locator, exc)
            return None

        if isinstance(data, dict):
            image = data.get("image") or data.get("image_alt")
            if isinstance(image, str) and image:
                return image

        logger.error("Metadata has no image: %s - %r", locator, data)
        return None
