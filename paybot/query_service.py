"""Client for the merchant payment-query HTTP API.

Three read-only lookups (order status, channel status, daily summary),
each a single GET authenticated by the merchant's API key. Responses
are returned as raw text; any failure becomes a QueryServiceError.
No retries.

Key classes:
    PaymentQueryService: aiohttp-backed client with a shared session.
"""

import asyncio
from typing import Dict, Optional
from urllib.parse import urlparse

import aiohttp
import structlog

from .exceptions import QueryServiceError

logger = structlog.get_logger("paybot.query")

QUERY_FAILED_MESSAGE = "Query failed, please try again later"

ORDER_STATUS_PATH = "/api/order/status"
CHANNEL_STATUS_PATH = "/api/channel/status"
DAILY_SUMMARY_PATH = "/api/summary/daily"


class PaymentQueryService:
    """Executes payment status queries against the merchant API.

    Args:
        base_url: API root, e.g. ``https://pay.example.com``.
        timeout: Total per-request timeout in seconds (default 5).
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            logger.warning("invalid_payment_api_url", url=self.base_url)
        elif parsed.scheme != "https" and parsed.hostname not in (
            "127.0.0.1", "localhost", "::1"
        ):
            logger.warning("insecure_payment_api_url", url=self.base_url)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create a shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        """Close the shared HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def query_order_status(self, api_key: str, order_id: str) -> str:
        return await self._execute_query(
            ORDER_STATUS_PATH, api_key, {"orderId": order_id}
        )

    async def query_channel_status(self, api_key: str) -> str:
        return await self._execute_query(CHANNEL_STATUS_PATH, api_key)

    async def query_daily_summary(self, api_key: str) -> str:
        return await self._execute_query(DAILY_SUMMARY_PATH, api_key)

    async def _execute_query(
        self,
        path: str,
        api_key: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        """GET ``path`` with the API key appended as a query parameter.

        Raises:
            QueryServiceError: On network error, timeout, non-200 status
                or an undecodable body.
        """
        query = dict(params or {})
        query["apiKey"] = api_key
        url = f"{self.base_url}{path}"

        session = await self._get_session()
        try:
            async with session.get(
                url,
                params=query,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                body = await resp.text(errors="replace")
                if resp.status != 200:
                    logger.error(
                        "query_failed", path=path, status=resp.status, body=body[:200]
                    )
                    raise QueryServiceError(
                        QUERY_FAILED_MESSAGE, status=resp.status, path=path
                    )
                logger.info("query_completed", path=path, length=len(body))
                return body
        except asyncio.TimeoutError:
            logger.error("query_timeout", path=path, timeout=self.timeout)
            raise QueryServiceError(QUERY_FAILED_MESSAGE, path=path, reason="timeout")
        except aiohttp.ClientError as e:
            logger.error("query_failed", path=path, error=str(e))
            raise QueryServiceError(QUERY_FAILED_MESSAGE, path=path) from e
        except QueryServiceError:
            raise
        except (ValueError, LookupError) as e:
            logger.error(
                "query_failed", path=path, error=str(e), exc_type=type(e).__name__
            )
            raise QueryServiceError(QUERY_FAILED_MESSAGE, path=path) from e
