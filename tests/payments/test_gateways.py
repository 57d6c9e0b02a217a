import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import (
    CallbackRequest,
    Invoice,
    InvoiceContext,
    PaymentFetchResultStatus,
    PaymentRefundResultStatus,
    PaymentRequestResultStatus,
    PaymentVerifyResultStatus,
)
from application.ports.payment_gateway import PaymentGateway
from core.settings import GatewayAccountSettings, PaymentMessages
from domain.payment.entity import Payment, Transaction, TransactionType
from domain.payment.exceptions import GatewayAccountNotFoundException
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.idpay_client import IdPayGateway
from infrastructure.external.payments.virtual_gateway import VirtualGateway


MESSAGES = PaymentMessages()


def _payment(gateway: str, account: str = "Default") -> Payment:
    return Payment(
        id=1,
        tracking_number=123,
        amount=Decimal("10000"),
        token="tok",
        gateway_name=gateway,
        gateway_account_name=account,
    )


def _invoice(gateway: str, account: str | None = None) -> Invoice:
    return Invoice(
        tracking_number=123,
        amount=Decimal("10000"),
        gateway_name=gateway,
        callback_url="https://shop.example/cb?paymentToken=tok",
        gateway_account_name=account,
    )


def _virtual() -> VirtualGateway:
    return VirtualGateway(base_url="http://shop.test/", accounts=[GatewayAccountSettings()])


# ---------------------------------------------------------------- virtual

@pytest.mark.asyncio
async def test_virtual_request_posts_to_local_page():
    result = await _virtual().request(_invoice("ParbadVirtual"))

    assert result.status == PaymentRequestResultStatus.SUCCEED
    assert result.gateway_account_name == "Default"
    assert result.transporter.type == "post"
    assert result.transporter.url == "http://shop.test/api/v1/virtual-gateway"
    assert result.transporter.form == {
        "CommandType": "request",
        "trackingNumber": "123",
        "amount": "10000",
        "redirectUrl": "https://shop.example/cb?paymentToken=tok",
    }


@pytest.mark.asyncio
async def test_virtual_fetch_reads_result_flag():
    gateway = _virtual()
    ok = await gateway.fetch(InvoiceContext(_payment("ParbadVirtual"), request=CallbackRequest({"result": "True"})))
    ko = await gateway.fetch(InvoiceContext(_payment("ParbadVirtual"), request=CallbackRequest({"result": "false"})))

    assert ok.status == PaymentFetchResultStatus.READY_FOR_VERIFYING
    assert ok.callback_result == {"result": "True"}
    assert ko.status == PaymentFetchResultStatus.FAILED
    assert ko.message == MESSAGES.payment_failed


@pytest.mark.asyncio
async def test_virtual_verify_falls_back_to_stored_callback():
    stored = Transaction(
        id=2,
        payment_id=1,
        type=TransactionType.CALLBACK,
        amount=Decimal("10000"),
        is_succeed=True,
        additional_data=json.dumps({"result": "true", "TransactionCode": "VX-1"}),
    )
    context = InvoiceContext(_payment("ParbadVirtual"), transactions=(stored,))

    result = await _virtual().verify(context)

    assert result.status == PaymentVerifyResultStatus.SUCCEED
    assert result.transaction_code == "VX-1"
    assert result.message == MESSAGES.payment_succeed


@pytest.mark.asyncio
async def test_virtual_verify_without_any_callback_fails():
    result = await _virtual().verify(InvoiceContext(_payment("ParbadVirtual")))
    assert result.status == PaymentVerifyResultStatus.FAILED


@pytest.mark.asyncio
async def test_virtual_refund_always_succeeds():
    result = await _virtual().refund(InvoiceContext(_payment("ParbadVirtual")), Decimal("5"))
    assert result.status == PaymentRefundResultStatus.SUCCEED


@pytest.mark.asyncio
async def test_unknown_account_raises():
    with pytest.raises(GatewayAccountNotFoundException):
        await _virtual().request(_invoice("ParbadVirtual", account="Other"))


def test_gateways_satisfy_protocol():
    assert isinstance(_virtual(), PaymentGateway)
    assert isinstance(IdPayGateway(), PaymentGateway)


# ------------------------------------------------------------------ idpay

def _idpay(handler) -> IdPayGateway:
    return IdPayGateway(
        api_request_url="https://idpay.test/payment",
        api_verification_url="https://idpay.test/payment/verify",
        accounts=[GatewayAccountSettings(name="Default", api_key="secret", is_test_account=True)],
        transport=httpx.MockTransport(handler),
        retry={"max": 0, "base": 0.01},
    )


@pytest.mark.asyncio
async def test_idpay_request_redirects_to_link():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "pay-1", "link": "https://idpay.test/p/pay-1"})

    gateway = _idpay(handler)
    result = await gateway.request(_invoice("IdPay"))
    await gateway.aclose()

    assert result.status == PaymentRequestResultStatus.SUCCEED
    assert result.transporter.type == "redirect"
    assert result.transporter.url == "https://idpay.test/p/pay-1"
    assert seen["url"] == "https://idpay.test/payment"
    assert seen["headers"]["X-API-KEY"] == "secret"
    assert seen["headers"]["X-SANDBOX"] == "1"
    assert seen["body"] == {
        "order_id": "123",
        "amount": 10000,
        "callback": "https://shop.example/cb?paymentToken=tok",
    }


@pytest.mark.asyncio
async def test_idpay_request_error_becomes_failed_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(406, json={"error_code": 32, "error_message": "Invalid order"})

    result = await _idpay(handler).request(_invoice("IdPay"))

    assert result.status == PaymentRequestResultStatus.FAILED
    assert "Invalid order" in result.message


@pytest.mark.asyncio
async def test_idpay_non_json_response_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(PaymentProviderError):
        await _idpay(handler).request(_invoice("IdPay"))


@pytest.mark.asyncio
async def test_idpay_fetch_requires_status_10_and_matching_order():
    gateway = _idpay(lambda request: httpx.Response(500))
    ready = await gateway.fetch(InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "123", "id": "pay-1"}),
    ))
    wrong_order = await gateway.fetch(InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "999"}),
    ))
    canceled = await gateway.fetch(InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "7", "order_id": "123"}),
    ))

    assert ready.status == PaymentFetchResultStatus.READY_FOR_VERIFYING
    assert wrong_order.status == PaymentFetchResultStatus.FAILED
    assert canceled.status == PaymentFetchResultStatus.FAILED
    assert "7" in canceled.message


@pytest.mark.asyncio
async def test_idpay_verify_succeeds_with_status_100():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": 100, "track_id": 555, "id": "pay-1"})

    context = InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "123", "id": "pay-1"}),
    )
    result = await _idpay(handler).verify(context)

    assert result.status == PaymentVerifyResultStatus.SUCCEED
    assert result.transaction_code == "555"
    assert seen["url"] == "https://idpay.test/payment/verify"
    assert seen["body"] == {"id": "pay-1", "order_id": "123"}


@pytest.mark.asyncio
async def test_idpay_verify_rejected_status_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": 53})

    context = InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "123", "id": "pay-1"}),
    )
    result = await _idpay(handler).verify(context)
    assert result.status == PaymentVerifyResultStatus.FAILED


@pytest.mark.asyncio
async def test_idpay_verify_skips_http_when_callback_failed():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"status": 100})

    context = InvoiceContext(_payment("IdPay"), request=CallbackRequest({"status": "3", "order_id": "123"}))
    result = await _idpay(handler).verify(context)

    assert result.status == PaymentVerifyResultStatus.FAILED
    assert calls == []


@pytest.mark.asyncio
async def test_idpay_verify_retries_transport_errors():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json={"status": 100, "track_id": "1"})

    gateway = IdPayGateway(
        accounts=[GatewayAccountSettings(api_key="secret")],
        transport=httpx.MockTransport(handler),
        retry={"max": 2, "base": 0.01},
    )
    context = InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "123", "id": "pay-1"}),
    )
    result = await gateway.verify(context)

    assert result.status == PaymentVerifyResultStatus.SUCCEED
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_idpay_refund_is_not_supported():
    result = await _idpay(lambda request: httpx.Response(500)).refund(InvoiceContext(_payment("IdPay")), Decimal("1"))
    assert result.status == PaymentRefundResultStatus.FAILED
    assert result.message == MESSAGES.refund_not_supported


@pytest.mark.asyncio
async def test_idpay_verify_server_error_is_recoverable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    context = InvoiceContext(
        _payment("IdPay"), request=CallbackRequest({"status": "10", "order_id": "123", "id": "pay-1"}),
    )
    with pytest.raises(PaymentRecoverableError):
        await _idpay(handler).verify(context)
