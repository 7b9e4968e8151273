"""
Tests for the Chapa gateway client against a mocked HTTP transport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from tutorbook.core.exceptions import GatewayError, GatewayTransientError, PayoutUnavailableError
from tutorbook.integrations.chapa_client import ChapaGateway
from tutorbook.services.interfaces import BankDetails, PayerInfo

PAYER = PayerInfo(email="abebe@example.com", first_name="Abebe", last_name="Kebede")
BANK = BankDetails(account_name="Abebe Kebede", account_number="1000123456", bank_code="CBE")


def gateway_with(handler) -> ChapaGateway:
    return ChapaGateway(
        secret_key="CHASECK_TEST",
        base_url="https://chapa.test/v1",
        transport=httpx.MockTransport(handler),
    )


async def checkout(gateway: ChapaGateway) -> str:
    return await gateway.init_checkout(
        amount=Decimal("100.00"),
        payer=PAYER,
        tx_ref="tx-1",
        callback_url="https://api.test/webhook/chapa",
        return_url="https://app.test/payment-status?tx_ref=tx-1",
    )


@pytest.mark.asyncio
async def test_init_checkout_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success", "data": {"checkout_url": "https://checkout.chapa.co/abc"}})

    url = await checkout(gateway_with(handler))
    assert url == "https://checkout.chapa.co/abc"
    assert seen["path"] == "/v1/transaction/initialize"
    assert seen["auth"] == "Bearer CHASECK_TEST"
    assert seen["body"]["amount"] == "100.00"
    assert seen["body"]["currency"] == "ETB"
    assert seen["body"]["tx_ref"] == "tx-1"


@pytest.mark.asyncio
async def test_init_checkout_rejected():
    def handler(request):
        return httpx.Response(400, json={"message": "Invalid currency"})

    with pytest.raises(GatewayError) as exc_info:
        await checkout(gateway_with(handler))
    assert "Invalid currency" in exc_info.value.message


@pytest.mark.asyncio
async def test_init_checkout_without_url():
    def handler(request):
        return httpx.Response(200, json={"status": "success", "data": {}})

    with pytest.raises(GatewayError):
        await checkout(gateway_with(handler))


@pytest.mark.asyncio
async def test_server_error_is_transient():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(GatewayTransientError):
        await checkout(gateway_with(handler))


@pytest.mark.asyncio
async def test_network_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayTransientError):
        await checkout(gateway_with(handler))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "gateway_status,expected",
    [("success", "completed"), ("failed", "failed"), ("pending", "pending")],
)
async def test_verify_maps_status(gateway_status, expected):
    def handler(request):
        assert request.url.path == "/v1/transaction/verify/tx-1"
        return httpx.Response(200, json={"status": "success", "data": {"status": gateway_status}})

    result = await gateway_with(handler).verify("tx-1")
    assert result.status == expected
    assert result.tx_ref == "tx-1"


@pytest.mark.asyncio
async def test_verify_unknown_transaction_is_failed():
    def handler(request):
        return httpx.Response(404, json={"message": "Invalid transaction"})

    result = await gateway_with(handler).verify("tx-missing")
    assert result.status == "failed"


@pytest.mark.asyncio
async def test_refund_success():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success", "data": {"reference": "TRF-42"}})

    reference = await gateway_with(handler).refund("tx-1", BANK, Decimal("100.00"), "refund-1-tx-1")
    assert reference == "TRF-42"
    assert seen["path"] == "/v1/transfer"
    assert seen["body"]["account_number"] == "1000123456"
    assert seen["body"]["reference"] == "refund-1-tx-1"


@pytest.mark.asyncio
async def test_refund_payout_disabled_by_status():
    def handler(request):
        return httpx.Response(405, json={"message": "Method not allowed"})

    with pytest.raises(PayoutUnavailableError):
        await gateway_with(handler).refund("tx-1", BANK, Decimal("100.00"), "refund-1-tx-1")


@pytest.mark.asyncio
async def test_refund_payout_disabled_by_message():
    def handler(request):
        return httpx.Response(400, json={"message": "The GET method is not supported for route v1/transfer."})

    with pytest.raises(PayoutUnavailableError):
        await gateway_with(handler).refund("tx-1", BANK, Decimal("100.00"), "refund-1-tx-1")


@pytest.mark.asyncio
async def test_refund_rejected():
    def handler(request):
        return httpx.Response(400, json={"message": "Insufficient balance"})

    with pytest.raises(GatewayError) as exc_info:
        await gateway_with(handler).refund("tx-1", BANK, Decimal("100.00"), "refund-1-tx-1")
    assert not isinstance(exc_info.value, PayoutUnavailableError)
