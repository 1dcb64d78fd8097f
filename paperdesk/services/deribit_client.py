"""Deribit REST client.

Public market-data calls need no credentials. Private calls (account summary)
use the OAuth2 client-credentials flow; the access token lives on the client
instance and is refreshed once it is within `refresh_margin` of expiry.
"""

import logging
import time
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DERIBIT_API_BASE = "https://www.deribit.com/api/v2"
DERIBIT_TESTNET_BASE = "https://test.deribit.com/api/v2"
DERIBIT_HISTORY_API_BASE = "https://history.deribit.com/api/v2"


class DeribitError(RuntimeError):
    """HTTP or JSON-RPC level failure from Deribit."""


@dataclass
class AccessToken:
    value: str
    expires_at: float  # time.monotonic() deadline

    def is_fresh(self, now: float | None = None) -> bool:
        return (now if now is not None else time.monotonic()) < self.expires_at


class DeribitClient:
    """Thin async wrapper around the Deribit v2 REST API."""

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        use_testnet: bool = False,
        timeout: float = 10.0,
        refresh_margin: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = DERIBIT_TESTNET_BASE if use_testnet else DERIBIT_API_BASE
        self.history_url = DERIBIT_HISTORY_API_BASE
        self.refresh_margin = refresh_margin
        self._http = httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._token: AccessToken | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def close(self):
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(self, url: str, params: dict, token: str | None = None) -> dict | list:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise DeribitError(f"request to {url} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            raise DeribitError(f"HTTP {response.status_code}: non-JSON response")

        if response.status_code >= 400 or (isinstance(data, dict) and data.get("error")):
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            raise DeribitError(f"HTTP {response.status_code}: {message or response.text[:200]}")

        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    async def _access_token(self) -> str:
        if self._token and self._token.is_fresh():
            return self._token.value

        if not self.has_credentials:
            raise DeribitError("Deribit client id and secret are not configured")

        result = await self._get(
            f"{self.base_url}/public/auth",
            {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        token = result.get("access_token") if isinstance(result, dict) else None
        if not token:
            raise DeribitError("No access token in Deribit auth response")

        expires_in = float(result.get("expires_in") or 3600)
        lifetime = max(expires_in - self.refresh_margin, 0.0)
        self._token = AccessToken(value=token, expires_at=time.monotonic() + lifetime)
        logger.info(f"Deribit token refreshed (valid for {lifetime:.0f}s)")
        return token

    # ------------------------------------------------------------------
    # Private API
    # ------------------------------------------------------------------

    async def get_account_summary(self, currency: str = "USDC") -> dict:
        token = await self._access_token()
        result = await self._get(
            f"{self.base_url}/private/get_account_summary",
            {"currency": currency},
            token=token,
        )
        return result if isinstance(result, dict) else {}

    # ------------------------------------------------------------------
    # Public market data
    # ------------------------------------------------------------------

    async def get_tradingview_chart_data(
        self,
        instrument_name: str,
        start_ms: int,
        end_ms: int,
        resolution: str,
    ) -> dict:
        """Native OHLC arrays: {ticks, open, high, low, close, volume, status}."""
        result = await self._get(
            f"{self.base_url}/public/get_tradingview_chart_data",
            {
                "instrument_name": instrument_name,
                "start_timestamp": start_ms,
                "end_timestamp": end_ms,
                "resolution": resolution,
            },
        )
        return result if isinstance(result, dict) else {}

    async def get_trades_by_time(
        self,
        instrument_name: str,
        start_ms: int,
        end_ms: int,
        count: int = 1000,
    ) -> dict:
        """One page of historical trades: {trades: [...], has_more: bool}."""
        result = await self._get(
            f"{self.history_url}/public/get_last_trades_by_instrument_and_time",
            {
                "instrument_name": instrument_name,
                "start_timestamp": start_ms,
                "end_timestamp": end_ms,
                "count": count,
                "sorting": "asc",
            },
        )
        return result if isinstance(result, dict) else {}
