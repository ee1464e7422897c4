from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from web3 import AsyncWeb3
from web3.contract.async_contract import AsyncContract

from nft_indexer.app.domain.ports.out import ContractCaller
from nft_indexer.app.infrastructure.decoders.abi import ERC721_ABI_PATH, load_abi


class Web3Erc721ContractCaller(ContractCaller):
    """
    ERC-721 read calls via AsyncWeb3 (eth_call at a given block height).

    Errors are not swallowed here: reverts (ContractLogicError), empty
    responses (BadFunctionCallOutput) and provider errors propagate so the
    caller's CallPolicy can retry and then degrade.

    contract_address is a 0x-prefixed hex string in any case.
    """

    def __init__(self, *, w3: AsyncWeb3, abi_path: Path = ERC721_ABI_PATH) -> None:
        self._w3 = w3
        self._abi = load_abi(abi_path)
        self._contracts: dict[str, AsyncContract] = {}

    async def call(
        self,
        *,
        contract_address: str,
        method: str,
        args: Sequence[Any] = (),
        block_height: int | None = None,
    ) -> Any:
        contract = self._contract(contract_address)
        fn = getattr(contract.functions, method)
        block_identifier = block_height if block_height is not None else "latest"
        return await fn(*args).call(block_identifier=block_identifier)

    def _contract(self, contract_address: str) -> AsyncContract:
        key = contract_address.lower()
        contract = self._contracts.get(key)
        if contract is None:
            # web3 expects checksum hex string
            addr = self._w3.to_checksum_address(key)
            contract = self._w3.eth.contract(address=addr, abi=self._abi)
            self._contracts[key] = contract
        return contract
