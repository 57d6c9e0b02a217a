from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest

from application.dtos.payments import CallbackRequest, Invoice
from application.services.invoice_builder import InvoiceBuilder
from application.utils.tracking_numbers import AutoRandomTrackingNumberProvider
from domain.common.exceptions import DomainValidationException
from infrastructure.tokens import QueryStringPaymentTokenProvider, append_query_param


def _invoice(callback_url: str) -> Invoice:
    return Invoice(tracking_number=1, amount=Decimal("10"), gateway_name="Stub", callback_url=callback_url)


@pytest.mark.asyncio
async def test_token_is_appended_to_callback_url(token_provider):
    invoice = _invoice("https://shop.example/callback?order=7")
    token = await token_provider.provide_token(invoice)

    assert len(token) == 32
    query = parse_qs(urlsplit(invoice.callback_url).query)
    assert query == {"order": ["7"], "paymentToken": [token]}


@pytest.mark.asyncio
async def test_tokens_are_unique(token_provider):
    tokens = {await token_provider.provide_token(_invoice("https://shop.example/cb")) for _ in range(50)}
    assert len(tokens) == 50


@pytest.mark.asyncio
async def test_retrieve_token_from_callback():
    provider = QueryStringPaymentTokenProvider(query_name="t")
    assert await provider.retrieve_token(CallbackRequest({"T": "abc"})) == "abc"
    assert await provider.retrieve_token(CallbackRequest({"other": "x"})) is None


def test_append_query_param_replaces_existing_value():
    url = append_query_param("https://shop.example/cb?paymentToken=old#top", "paymentToken", "new")
    assert url == "https://shop.example/cb?paymentToken=new#top"


def test_callback_request_lookup_is_case_insensitive():
    request = CallbackRequest({"TransactionCode": "X1", "empty": None}, method="post")
    assert request.get("transactioncode") == "X1"
    assert "TRANSACTIONCODE" in request
    assert request.get("empty") == ""
    assert request.get("missing", "d") == "d"
    assert request.method == "POST"
    assert request.params == {"TransactionCode": "X1", "empty": ""}
    assert not CallbackRequest()


def test_auto_random_tracking_number_respects_minimum():
    provider = AutoRandomTrackingNumberProvider(minimum=5000)
    assert all(provider.provide() >= 5000 for _ in range(100))


def test_builder_builds_invoice():
    invoice = (
        InvoiceBuilder()
        .set_tracking_number(123)
        .set_amount(10000)
        .set_callback_url("https://shop.example/cb")
        .set_gateway("ParbadVirtual")
        .set_gateway_account_name("Default")
        .add_property("customer", "42")
        .build()
    )
    assert invoice.tracking_number == 123
    assert invoice.amount == Decimal("10000")
    assert invoice.gateway_account_name == "Default"
    assert invoice.properties == {"customer": "42"}


def test_builder_uses_random_tracking_number():
    invoice = (
        InvoiceBuilder()
        .use_auto_random_tracking_number(minimum=2000)
        .set_amount("12.50")
        .set_callback_url("https://shop.example/cb")
        .set_gateway("ParbadVirtual")
        .build()
    )
    assert invoice.tracking_number >= 2000
    assert invoice.amount == Decimal("12.50")


@pytest.mark.parametrize(
    "builder, field",
    [
        (InvoiceBuilder().set_amount(1).set_callback_url("u").set_gateway("g"), "tracking_number"),
        (InvoiceBuilder().set_tracking_number(1).set_callback_url("u").set_gateway("g"), "amount"),
        (InvoiceBuilder().set_tracking_number(1).set_amount(1).set_gateway("g"), "callback_url"),
        (InvoiceBuilder().set_tracking_number(1).set_amount(1).set_callback_url("u"), "gateway_name"),
        (InvoiceBuilder().set_tracking_number(1).set_amount(0).set_callback_url("u").set_gateway("g"), "amount"),
    ],
)
def test_builder_validation_errors(builder, field):
    with pytest.raises(DomainValidationException) as exc_info:
        builder.build()
    assert exc_info.value.field == field


def test_builder_rejects_non_numeric_amount():
    with pytest.raises(DomainValidationException):
        InvoiceBuilder().set_amount("ten")
