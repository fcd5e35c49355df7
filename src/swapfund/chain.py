"""On-chain reads through web3: balances and token decimals.

web3's HTTP provider is synchronous, so calls run in a worker thread.
"""

import asyncio
import logging
from typing import Optional

from swapfund.services.ports import BalanceReader, BalanceSnapshot
from swapfund.tokens import TokenRegistry

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
]


class ChainReader:
    """Thin read-only web3 client for native and ERC20 state."""

    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url
        self._web3 = None

    @property
    def web3(self):
        """Lazy load web3 instance."""
        if self._web3 is None:
            from web3 import Web3
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    @staticmethod
    async def _run(func):
        """Run a sync web3 call in the thread pool."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func)

    def _erc20(self, token_address: str):
        from web3 import Web3
        return self.web3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    async def native_balance(self, address: str) -> int:
        from web3 import Web3
        checksum = Web3.to_checksum_address(address)
        return await self._run(lambda: self.web3.eth.get_balance(checksum))

    async def token_balance(self, token_address: str, address: str) -> int:
        from web3 import Web3
        call = self._erc20(token_address).functions.balanceOf(Web3.to_checksum_address(address))
        return await self._run(call.call)

    async def decimals(self, token_address: str) -> int:
        """ERC20 `decimals()`; usable as a `TokenRegistry` decimals reader."""
        call = self._erc20(token_address).functions.decimals()
        return int(await self._run(call.call))


class Web3BalanceReader(BalanceReader):
    """Reads every registry asset's balance for an address."""

    def __init__(self, registry: TokenRegistry, reader: Optional[ChainReader] = None, rpc_url: str = ""):
        self.registry = registry
        self.reader = reader or ChainReader(rpc_url)

    async def balance_of(self, user_address: str, asset: str) -> int:
        if self.registry.is_native(asset):
            return await self.reader.native_balance(user_address)
        return await self.reader.token_balance(self.registry.address_of(asset), user_address)

    async def snapshot(self, user_address: str) -> BalanceSnapshot:
        symbols = self.registry.symbols()
        results = await asyncio.gather(
            *(self.balance_of(user_address, symbol) for symbol in symbols),
            return_exceptions=True,
        )

        balances: dict[str, int] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                # One bad token contract should not hide the rest
                logger.debug(f"Balance read failed for {symbol} ({user_address}): {result}")
                continue
            if result > 0:
                balances[symbol] = int(result)

        logger.info(f"Read {len(balances)} non-zero balances for {user_address}")
        return BalanceSnapshot(user_address=user_address, balances=balances)
