"""Uniswap V3 pool quoter.

Calls `quoteExactInputSingle` on the Uniswap V3 Quoter contract, one
fee tier per call. The quoter reverts when no pool exists for the tier.
"""

import asyncio
import logging
from typing import Optional

from swapfund.errors import QuoteUnavailable
from swapfund.routing.base import PoolQuoter
from swapfund.tokens import AssetRef

logger = logging.getLogger(__name__)

QUOTER_ABI = [
    {
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "name": "quoteExactInputSingle",
        "outputs": [{"name": "amountOut", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]


class UniswapV3PoolQuoter(PoolQuoter):
    """Quotes single Uniswap V3 pools through the on-chain quoter."""

    def __init__(self, rpc_url: str, quoter_address: str, wrapped_native_address: str):
        """Initialize quoter.

        Args:
            rpc_url: Chain RPC endpoint
            quoter_address: Uniswap V3 Quoter contract
            wrapped_native_address: Pools hold the wrapped native token, never the native one
        """
        self.rpc_url = rpc_url
        self.quoter_address = quoter_address
        self.wrapped_native_address = wrapped_native_address
        self._web3 = None
        self._contract = None

    @property
    def name(self) -> str:
        return "uniswap-v3"

    @property
    def web3(self):
        """Lazy load web3 instance."""
        if self._web3 is None:
            from web3 import Web3
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.web3.eth.contract(
                address=self.web3.to_checksum_address(self.quoter_address),
                abi=QUOTER_ABI,
            )
        return self._contract

    def _pool_token(self, asset: AssetRef) -> str:
        address = self.wrapped_native_address if asset.is_native else asset.address
        return self.web3.to_checksum_address(address)

    async def quote_fee_tier(self, source: AssetRef, dest: AssetRef, amount_in: int, fee_tier: int) -> int:
        if amount_in <= 0:
            raise QuoteUnavailable(f"Uniswap: amount must be positive, got {amount_in}")

        call = self.contract.functions.quoteExactInputSingle(
            self._pool_token(source),
            self._pool_token(dest),
            fee_tier,
            amount_in,
            0,
        )
        try:
            # Sync web3 call, run in thread pool for async
            loop = asyncio.get_event_loop()
            amount_out: Optional[int] = await loop.run_in_executor(None, call.call)
        except Exception as e:
            raise QuoteUnavailable(
                f"no pool for {source} -> {dest} at fee tier {fee_tier}: {type(e).__name__}"
            ) from e

        if amount_out is None or amount_out < 0:
            raise QuoteUnavailable(f"Uniswap quoter returned {amount_out!r} for {source} -> {dest}")
        return int(amount_out)
