"""1inch DEX aggregator quote source.

Uses the 1inch swap API quote endpoint. The aggregator shops venues and
charges its fee internally, so its quote is used as a single opaque hop.
API docs: https://portal.1inch.dev/documentation/apis/swap/introduction
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from swapfund.errors import QuoteUnavailable
from swapfund.routing.base import Quote, QuoteSource, Route
from swapfund.tokens import NATIVE_ASSET_ADDRESS, AssetRef

logger = logging.getLogger(__name__)

ONEINCH_SWAP_API = "swap/v6.0"


class OneInchQuoteSource(QuoteSource):
    """1inch aggregator provider for a single EVM chain."""

    def __init__(
        self,
        api_url: str = "https://api.1inch.dev",
        api_key: Optional[str] = None,
        chain_id: int = 8453,
        fee_bps: Decimal = Decimal("10"),
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize 1inch provider.

        Args:
            api_url: API base URL (trailing slash tolerated)
            api_key: 1inch API key (required for production)
            chain_id: EVM chain id
            fee_bps: Fee reported on quotes; 1inch folds its fee into the output
            timeout: Request timeout in seconds
            client: Optional shared client (tests inject a mock transport here)
        """
        self.api_key = api_key
        self.chain_id = chain_id
        self.fee_bps = fee_bps
        self.timeout = timeout
        self.base_url = f"{api_url.rstrip('/')}/{ONEINCH_SWAP_API}/{chain_id}"
        self._client = client

        if not api_key:
            logger.warning("1inch API key not configured. Quotes may be rate limited or rejected.")

    @property
    def name(self) -> str:
        return "1inch"

    def _get_headers(self) -> dict:
        """Get API headers with authorization."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _token_address(asset: AssetRef) -> str:
        return NATIVE_ASSET_ADDRESS if asset.is_native else asset.address

    async def _get(self, path: str, params: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(f"{self.base_url}{path}", headers=self._get_headers(), params=params)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(f"{self.base_url}{path}", headers=self._get_headers(), params=params)

    async def quote(self, source: AssetRef, dest: AssetRef, amount_in: int) -> Quote:
        """Get quote from 1inch.

        Raises:
            QuoteUnavailable: on API error, transport error or malformed body
        """
        if amount_in <= 0:
            raise QuoteUnavailable(f"1inch: amount must be positive, got {amount_in}")

        logger.debug(f"Requesting 1inch quote for {amount_in} {source} -> {dest}")

        try:
            response = await self._get(
                "/quote",
                params={
                    "src": self._token_address(source),
                    "dst": self._token_address(dest),
                    "amount": str(amount_in),
                },
            )
        except httpx.HTTPError as e:
            raise QuoteUnavailable(f"1inch request failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            description = ""
            try:
                description = response.json().get("description", "")
            except ValueError:
                pass
            raise QuoteUnavailable(
                f"1inch API error: {response.status_code} {description or response.text[:200]}"
            )

        try:
            data = response.json()
            raw_amount = data.get("dstAmount", data.get("toAmount"))
            amount_out = int(raw_amount)
        except (ValueError, TypeError, AttributeError) as e:
            raise QuoteUnavailable(f"1inch returned a malformed quote: {e}") from e

        if amount_out < 0:
            raise QuoteUnavailable(f"1inch returned negative output: {amount_out}")

        route = Route.direct(source.symbol, dest.symbol, venue=self.name)
        return Quote(
            source_asset=source.symbol,
            dest_asset=dest.symbol,
            amount_in=amount_in,
            amount_out=amount_out,
            fee_bps=self.fee_bps,
            price_impact_pct=Decimal("0"),
            route_description=f"{source.symbol} -> {dest.symbol} ({self.name})",
            route=route,
            provider=self.name,
        )
