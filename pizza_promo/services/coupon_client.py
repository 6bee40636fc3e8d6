"""Client for the external sales service that mints reward coupons.

Contract with the sales service: ``POST {base}{path}`` with headers
``x-api-key`` and ``x-idempotency-key``. The service must treat repeated
requests carrying the same idempotency key as one issuance and return the
coupon minted the first time. Response field names vary between sales
service versions, so they are normalized here and never leave this module.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Optional

import aiohttp
from aiohttp import ClientTimeout, ClientError, ContentTypeError

from pizza_promo.config import get_settings
from pizza_promo.utils.datetime_helpers import ensure_utc

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ERROR = "coupon service not configured"


@dataclass(frozen=True)
class Coupon:
    """Coupon as returned by the sales service."""
    code: str
    expires_at: Optional[datetime] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class CouponIssuanceRequest:
    """Idempotent request to mint one coupon for one claim."""
    idempotency_key: str
    contact: Optional[str]
    hours: int
    game_number: Optional[int]
    game_id: int
    channel: str

    def to_payload(self) -> dict:
        return {
            "hours": self.hours,
            "contact": self.contact,
            "gameNumber": self.game_number,
            "gameId": self.game_id,
            "channel": self.channel,
            "source": "promo-game",
        }


@dataclass(frozen=True)
class CouponIssuanceResult:
    issued: bool
    coupon: Optional[Coupon] = None
    error: Optional[str] = None
    status: Optional[int] = None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        logger.warning(f"Unparseable coupon expiry from sales service: {value!r}")
        return None


def parse_coupon_response(data: Any) -> Optional[Coupon]:
    """Normalize ``{code, expiresAt}`` or ``{coupon: {code, expiresAt}}`` bodies."""
    if not isinstance(data, dict):
        return None

    nested = data.get("coupon") if isinstance(data.get("coupon"), dict) else {}
    code = data.get("code") or nested.get("code")
    if not code:
        return None

    expires = (
        data.get("expiresAt")
        or data.get("expires_at")
        or nested.get("expiresAt")
        or nested.get("expires_at")
    )
    name = nested.get("name") or data.get("name") or data.get("prizeName")

    return Coupon(code=str(code), expires_at=_parse_datetime(expires), name=name)


class CouponIssuanceClient:
    """
    Client for the sales service coupon endpoint.

    Manages HTTP session lifecycle properly to prevent resource leaks.
    Session is created lazily on first use and should be closed on shutdown.
    """

    def __init__(self):
        self.settings = get_settings()
        self.base_url = (self.settings.sales_api_base_url or "").rstrip('/')
        self.path = self.settings.sales_coupon_path
        self.api_key = self.settings.sales_api_key
        self.timeout = ClientTimeout(total=self.settings.sales_timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - ensure session is closed."""
        await self.close()

    async def _ensure_session(self):
        """Ensure session exists and is not closed."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            logger.debug("Created new aiohttp session for coupon client")

    async def close(self):
        """Close the underlying aiohttp client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session for coupon client")
            self._session = None

    async def issue(self, request: CouponIssuanceRequest) -> CouponIssuanceResult:
        """
        Mint a coupon for a claim. Never raises: every failure is returned
        as an unissued result carrying an error message.
        """
        if not self.configured:
            logger.info(f"Coupon service not configured, skipping {request.idempotency_key}")
            return CouponIssuanceResult(issued=False, error=NOT_CONFIGURED_ERROR)

        await self._ensure_session()
        url = f"{self.base_url}{self.path}"
        headers = {
            "x-api-key": self.api_key,
            "x-idempotency-key": request.idempotency_key,
        }
        logger.info(f"Requesting coupon {request.idempotency_key} for game {request.game_id}")

        try:
            async with self._session.post(url, json=request.to_payload(), headers=headers) as response:
                if 200 <= response.status < 300:
                    try:
                        data = await response.json(content_type=None)
                    except (ContentTypeError, ValueError):
                        logger.error(f"Coupon service returned a non-JSON body for {request.idempotency_key}")
                        return CouponIssuanceResult(
                            issued=False, error="Coupon service returned an invalid response", status=response.status
                        )

                    coupon = parse_coupon_response(data)
                    if coupon is None:
                        logger.error(f"Coupon service response without a code for {request.idempotency_key}: {data}")
                        return CouponIssuanceResult(
                            issued=False, error="Coupon service response missing coupon code", status=response.status
                        )

                    logger.info(f"Coupon issued for {request.idempotency_key}")
                    return CouponIssuanceResult(issued=True, coupon=coupon, status=response.status)

                error_text = await response.text()
                logger.error(f"Coupon service error {response.status} for {request.idempotency_key}: {error_text[:200]}")
                return CouponIssuanceResult(
                    issued=False, error=f"Coupon service error: {response.status}", status=response.status
                )

        except asyncio.TimeoutError:
            logger.error(f"Coupon service timeout for {request.idempotency_key}")
            return CouponIssuanceResult(issued=False, error="Coupon service timeout")
        except ClientError as e:
            logger.error(f"Coupon service client error for {request.idempotency_key}: {e}")
            return CouponIssuanceResult(issued=False, error="Coupon service unavailable")
        except Exception as e:
            logger.error(f"Coupon service unexpected error for {request.idempotency_key}: {e}")
            return CouponIssuanceResult(issued=False, error="Coupon service error")


# Singleton instance
_coupon_client: CouponIssuanceClient | None = None


def get_coupon_client() -> CouponIssuanceClient:
    """Get singleton coupon client instance."""
    global _coupon_client
    if _coupon_client is None:
        _coupon_client = CouponIssuanceClient()
    return _coupon_client
