"""Tests for the sales service coupon client.

Covers configuration, session lifecycle, payload and headers, response
normalization and the failure modes that must come back as unissued
results instead of exceptions.
"""
import asyncio
from datetime import datetime, UTC

import pytest
from unittest.mock import AsyncMock, patch, MagicMock
import aiohttp
from aiohttp import ClientTimeout, ClientError

from pizza_promo.services.coupon_client import (
    NOT_CONFIGURED_ERROR,
    CouponIssuanceClient,
    CouponIssuanceRequest,
    get_coupon_client,
    parse_coupon_response,
)


@pytest.fixture
def mock_settings():
    """Mock settings for tests."""
    settings = MagicMock()
    settings.sales_api_base_url = "https://ventas.example.com/"
    settings.sales_api_key = "secret-key"
    settings.sales_coupon_path = "/api/coupons/issue"
    settings.sales_timeout_seconds = 5.0
    return settings


@pytest.fixture
def client(mock_settings):
    """Create a coupon client with mocked settings."""
    with patch("pizza_promo.services.coupon_client.get_settings", return_value=mock_settings):
        return CouponIssuanceClient()


@pytest.fixture
def issuance_request():
    return CouponIssuanceRequest(
        idempotency_key="claim-7",
        contact="+34612345678",
        hours=24,
        game_number=437,
        game_id=1,
        channel="GAME",
    )


def _mock_post(mock_session, mock_response):
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.post.return_value.__aenter__ = AsyncMock(return_value=mock_response)
    mock_session.post.return_value.__aexit__ = AsyncMock()
    mock_session.closed = False


class TestCouponClientInit:

    def test_init_strips_trailing_slash(self, client):
        assert client.base_url == "https://ventas.example.com"

    def test_init_sets_timeout(self, client):
        assert isinstance(client.timeout, ClientTimeout)
        assert client.timeout.total == 5.0

    def test_init_session_is_none(self, client):
        assert client._session is None

    def test_configured_requires_url_and_key(self, mock_settings):
        mock_settings.sales_api_key = ""
        with patch("pizza_promo.services.coupon_client.get_settings", return_value=mock_settings):
            assert CouponIssuanceClient().configured is False


class TestSessionManagement:

    @pytest.mark.asyncio
    async def test_ensure_session_creates_and_reuses(self, client):
        await client._ensure_session()
        first_session = client._session
        assert isinstance(first_session, aiohttp.ClientSession)
        await client._ensure_session()
        assert client._session is first_session
        await client.close()

    @pytest.mark.asyncio
    async def test_close_when_session_is_none(self, client):
        await client.close()
        assert client._session is None

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, client):
        async with client as ctx_client:
            assert ctx_client is client
            assert client._session is not None
        assert client._session is None


class TestIssue:

    @pytest.mark.asyncio
    async def test_issue_success_flat_body(self, client, issuance_request):
        mock_response = AsyncMock()
        mock_response.status = 201
        mock_response.json = AsyncMock(return_value={"code": "PZ-1234", "expiresAt": "2030-01-02T12:00:00Z"})

        with patch.object(client, "_session", create=True) as mock_session:
            _mock_post(mock_session, mock_response)
            result = await client.issue(issuance_request)

        assert result.issued is True
        assert result.coupon.code == "PZ-1234"
        assert result.coupon.expires_at == datetime(2030, 1, 2, 12, 0, tzinfo=UTC)
        assert result.status == 201
        assert result.error is None

    @pytest.mark.asyncio
    async def test_issue_sends_idempotency_headers_and_payload(self, client, issuance_request):
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={"code": "PZ-1"})

        with patch.object(client, "_session", create=True) as mock_session:
            _mock_post(mock_session, mock_response)
            await client.issue(issuance_request)

        mock_session.post.assert_called_once_with(
            "https://ventas.example.com/api/coupons/issue",
            json={
                "hours": 24,
                "contact": "+34612345678",
                "gameNumber": 437,
                "gameId": 1,
                "channel": "GAME",
                "source": "promo-game",
            },
            headers={"x-api-key": "secret-key", "x-idempotency-key": "claim-7"},
        )

    @pytest.mark.asyncio
    async def test_issue_success_nested_body(self, client, issuance_request):
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={
            "ok": True,
            "coupon": {"code": "PZ-9", "expires_at": "2030-01-02T12:00:00+00:00", "name": "Pizza mediana"},
        })

        with patch.object(client, "_session", create=True) as mock_session:
            _mock_post(mock_session, mock_response)
            result = await client.issue(issuance_request)

        assert result.issued is True
        assert result.coupon.code == "PZ-9"
        assert result.coupon.name == "Pizza mediana"

    @pytest.mark.asyncio
    async def test_issue_missing_code(self, client, issuance_request):
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={"ok": True})

        with patch.object(client, "_session", create=True) as mock_session:
            _mock_post(mock_session, mock_response)
            result = await client.issue(issuance_request)

        assert result.issued is False
        assert "missing coupon code" in result.error

    @pytest.mark.asyncio
    async def test_issue_api_error(self, client, issuance_request):
        mock_response = AsyncMock()
        mock_response.status = 500
        mock_response.text = AsyncMock(return_value="Internal Server Error")

        with patch.object(client, "_session", create=True) as mock_session:
            _mock_post(mock_session, mock_response)
            result = await client.issue(issuance_request)

        assert result.issued is False
        assert result.error == "Coupon service error: 500"
        assert result.status == 500

    @pytest.mark.asyncio
    async def test_issue_timeout(self, client, issuance_request):
        with patch.object(client, "_session", create=True) as mock_session:
            mock_session.post = MagicMock(side_effect=asyncio.TimeoutError())
            mock_session.closed = False

            result = await client.issue(issuance_request)

        assert result.issued is False
        assert "timeout" in result.error.lower()

    @pytest.mark.asyncio
    async def test_issue_client_error(self, client, issuance_request):
        with patch.object(client, "_session", create=True) as mock_session:
            mock_session.post = MagicMock(side_effect=ClientError())
            mock_session.closed = False

            result = await client.issue(issuance_request)

        assert result.issued is False
        assert "unavailable" in result.error.lower()

    @pytest.mark.asyncio
    async def test_issue_unexpected_error(self, client, issuance_request):
        with patch.object(client, "_session", create=True) as mock_session:
            mock_session.post = MagicMock(side_effect=ValueError("Unexpected"))
            mock_session.closed = False

            result = await client.issue(issuance_request)

        assert result.issued is False
        assert result.error == "Coupon service error"

    @pytest.mark.asyncio
    async def test_issue_not_configured_skips_request(self, mock_settings, issuance_request):
        mock_settings.sales_api_base_url = ""
        with patch("pizza_promo.services.coupon_client.get_settings", return_value=mock_settings):
            unconfigured = CouponIssuanceClient()

        result = await unconfigured.issue(issuance_request)

        assert result.issued is False
        assert result.error == NOT_CONFIGURED_ERROR
        assert unconfigured._session is None


class TestParseCouponResponse:

    def test_non_dict_body(self):
        assert parse_coupon_response(["PZ-1"]) is None

    def test_unparseable_expiry_keeps_code(self):
        coupon = parse_coupon_response({"code": "PZ-1", "expiresAt": "next tuesday"})
        assert coupon.code == "PZ-1"
        assert coupon.expires_at is None


def test_get_coupon_client_is_singleton():
    assert get_coupon_client() is get_coupon_client()
