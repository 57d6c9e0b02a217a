from urllib.parse import urlsplit

import httpx
import pytest

from api.dependencies import get_payment_orchestrator
from application.services.gateway_registry import GatewayRegistry
from application.services.payment_orchestrator import PaymentOrchestrator
from core.settings import GatewayAccountSettings
from infrastructure.external.payments.virtual_gateway import VirtualGateway
from main import app


@pytest.fixture
def client(storage, token_provider):
    orchestrator = PaymentOrchestrator(
        storage=storage,
        token_provider=token_provider,
        gateways=GatewayRegistry([
            VirtualGateway(base_url="http://test", accounts=[GatewayAccountSettings()]),
        ]),
    )
    app.dependency_overrides[get_payment_orchestrator] = lambda: orchestrator
    yield httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    app.dependency_overrides.clear()


async def _request_payment(client, tracking_number=123, amount=10000, gateway="ParbadVirtual"):
    return await client.post("/api/v1/payments/request", json={
        "tracking_number": tracking_number,
        "amount": amount,
        "gateway_name": gateway,
        "callback_url": "http://test/api/v1/payments/callback",
    })


@pytest.mark.asyncio
async def test_health(client):
    async with client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"] == {"status": "healthy"}
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_virtual_gateway_flow_over_http(client):
    async with client:
        response = await _request_payment(client)
        assert response.status_code == 200
        body = response.json()
        assert body["code"] == 0
        transporter = body["data"]["transporter"]
        assert body["data"]["status"] == "succeed"
        assert transporter["type"] == "post"
        assert transporter["url"] == "http://test/api/v1/virtual-gateway"

        page = await client.post(transporter["url"], data=transporter["form"])
        assert page.status_code == 200
        assert "Pay" in page.text and "Cancel" in page.text

        redirect = urlsplit(transporter["form"]["redirectUrl"])
        callback = await client.post(
            f"{redirect.path}?{redirect.query}",
            data={"result": "true", "TransactionCode": "VX-1", "trackingNumber": "123"},
        )
        assert callback.status_code == 200
        data = callback.json()["data"]
        assert data["fetch"]["status"] == "ready_for_verifying"
        assert data["verify"]["status"] == "succeed"
        assert data["verify"]["transaction_code"] == "VX-1"

        status = await client.get("/api/v1/payments/123")
        assert status.json()["data"]["status"] == "already_processed"
        assert status.json()["data"]["is_already_verified"] is True

        again = await client.post("/api/v1/payments/123/verify")
        assert again.json()["data"]["status"] == "already_verified"

        too_much = await client.post("/api/v1/payments/123/refund", json={"amount": "20000"})
        assert too_much.json()["data"]["status"] == "refund_amount_exceeds_paid_amount"

        refund = await client.post("/api/v1/payments/123/refund")
        assert refund.json()["data"]["status"] == "succeed"


@pytest.mark.asyncio
async def test_duplicate_request_returns_status_not_error(client):
    async with client:
        await _request_payment(client)
        response = await _request_payment(client)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "tracking_number_already_exists"


@pytest.mark.asyncio
async def test_cancel_endpoint(client):
    async with client:
        await _request_payment(client)
        response = await client.post("/api/v1/payments/123/cancel", json={"reason": "Out of stock"})
    data = response.json()["data"]
    assert data["is_succeed"] is True
    assert data["message"] == "Out of stock"


@pytest.mark.asyncio
async def test_unknown_tracking_number_is_404(client):
    async with client:
        response = await client.get("/api/v1/payments/999")
    assert response.status_code == 404
    body = response.json()
    assert body["code"] == 20101
    assert body["error"]["type"] == "InvoiceNotFound"


@pytest.mark.asyncio
async def test_unknown_gateway_is_400(client):
    async with client:
        response = await _request_payment(client, gateway="Nope")
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "GatewayNotRegistered"


@pytest.mark.asyncio
async def test_invalid_amount_is_422(client):
    async with client:
        response = await _request_payment(client, amount=0)
    assert response.status_code == 422
    assert response.json()["error"]["type"] == "ValidationError"


@pytest.mark.asyncio
async def test_callback_without_token_is_400(client):
    async with client:
        response = await client.get("/api/v1/payments/callback", params={"result": "true"})
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "PaymentTokenProviderError"


@pytest.mark.asyncio
async def test_virtual_gateway_page_rejects_incomplete_request(client):
    async with client:
        response = await client.get("/api/v1/virtual-gateway")
    assert response.status_code == 400
