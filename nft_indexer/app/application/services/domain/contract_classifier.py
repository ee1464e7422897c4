from __future__ import annotations

import logging

from nft_indexer.app.application.services.caches import ProcessCache
from nft_indexer.app.application.services.call_policy import CallPolicy
from nft_indexer.app.domain.ports.out import ContractCaller, NftStore

logger = logging.getLogger(__name__)

ERC165_INTERFACE_ID = bytes.fromhex("01ffc9a7")
ERC721_INTERFACE_ID = bytes.fromhex("80ac58cd")

_ZERO_ADDRESS = "0x" + "00" * 20


class ContractClassifier:
    """
    Decides whether a contract emitting Transfer-shaped logs is a genuine ERC-721.

    Check order:
      1. supportsInterface(0x01ffc9a7) must return True (ERC-165),
      2. supportsInterface(0x80ac58cd) must return True (ERC-721),
      3. balanceOf(zero address) must *fail*. A contract that happily answers
         balanceOf for the zero address is not counted as ERC-721.

    Any failure in steps 1-2, or any unexpected error, classifies as False.
    Only verdicts backed by actual answers are cached for the process
    lifetime; a False caused by a failed call is checked again next time.
    A contract already stored as a collection is always True.
    """

    def __init__(
        self,
        *,
        caller: ContractCaller,
        store: NftStore,
        policy: CallPolicy,
        cache: ProcessCache[str, bool] | None = None,
    ) -> None:
        self._caller = caller
        self._store = store
        self._policy = policy
        self._cache: ProcessCache[str, bool] = cache if cache is not None else ProcessCache()

    async def classify(self, address: str, block_height: int) -> bool:
        address = address.lower()

        cached = self._cache.get(address)
        if cached is not None:
            return cached

        if await self._store.get_collection(address) is not None:
            return self._cache.put(address, True)

        try:
            verdict = await self._check(address, block_height)
        except Exception:
            logger.exception("Unexpected error while classifying %s", address)
            verdict = None

        if verdict is None:
            logger.warning("Could not classify %s at %s; will retry later", address, block_height)
            return False

        if verdict:
            logger.info("Contract %s classified as ERC-721", address)
        else:
            logger.debug("Contract %s is not ERC-721", address)

        return self._cache.put(address, verdict)

    async def _check(self, address: str, block_height: int) -> bool | None:
        """True / False when the contract answered; None when a check call failed."""
        for interface_id in (ERC165_INTERFACE_ID, ERC721_INTERFACE_ID):
            supported = await self._supports_interface(address, interface_id, block_height)
            if supported is not True:
                return supported

        try:
            balance = await self._policy.run(
                lambda: self._caller.call(
                    contract_address=address,
                    method="balanceOf",
                    args=(_ZERO_ADDRESS,),
                    block_height=block_height,
                ),
                label=f"balanceOf({address})",
            )
        except Exception:
            return True

        logger.debug("balanceOf(zero) answered %s for %s", balance, address)
        return False

    async def _supports_interface(
        self,
        address: str,
        interface_id: bytes,
        block_height: int,
    ) -> bool | None:
        try:
            result = await self._policy.run(
                lambda: self._caller.call(
                    contract_address=address,
                    method="supportsInterface",
                    args=(interface_id,),
                    block_height=block_height,
                ),
                label=f"supportsInterface({address}, 0x{interface_id.hex()})",
            )
        except Exception as exc:
            logger.warning(
                "supportsInterface(0x%s) failed for %s: %r",
                interface_id.hex(),
                address,
                exc,
            )
            return None
        return result is True
