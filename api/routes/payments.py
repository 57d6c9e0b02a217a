"""
Payments API routes.

Thin HTTP layer over PaymentOrchestrator: request a payment, receive the
gateway callback, query/verify/cancel/refund by tracking number.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from pydantic.types import condecimal

from api.dependencies import get_payment_orchestrator
from application.dtos.payments import CallbackRequest, RefundInvoice
from application.services.invoice_builder import InvoiceBuilder
from application.services.payment_orchestrator import PaymentOrchestrator
from core.config import settings
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class PaymentRequestIn(BaseModel):
    tracking_number: Optional[int] = Field(default=None, description="留空则自动生成随机跟踪号")
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    gateway_name: str
    callback_url: Optional[str] = Field(default=None, description="留空则使用本服务的 /payments/callback")
    gateway_account_name: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)


class CancelIn(BaseModel):
    reason: Optional[str] = None


class RefundIn(BaseModel):
    amount: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]


async def callback_request_from(request: Request) -> CallbackRequest:
    """合并查询参数与表单字段（表单优先）"""
    params: dict[str, str] = dict(request.query_params)
    content_type = (request.headers.get("content-type") or "").lower()
    if request.method == "POST" and any(ct in content_type for ct in FORM_CONTENT_TYPES):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return CallbackRequest(params, method=request.method)


@router.post("/request", summary="Request payment")
async def request_payment(
    payload: PaymentRequestIn,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    builder = (
        InvoiceBuilder()
        .set_amount(payload.amount)
        .set_gateway(payload.gateway_name)
        .set_callback_url(payload.callback_url or f"{settings.PUBLIC_BASE_URL}/api/v1/payments/callback")
    )
    if payload.tracking_number is not None:
        builder.set_tracking_number(payload.tracking_number)
    else:
        builder.use_auto_random_tracking_number(payment_settings.tracking_number.minimum)
    if payload.gateway_account_name:
        builder.set_gateway_account_name(payload.gateway_account_name)
    for key, value in payload.properties.items():
        builder.add_property(key, value)

    result = await orchestrator.request(builder.build())
    return success_response(data=result.model_dump(mode="json"), message=result.message or "Success")


@router.api_route("/callback", methods=["GET", "POST"], summary="Gateway callback")
async def payment_callback(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    callback = await callback_request_from(request)
    fetch_result = await orchestrator.fetch_and_store(callback)

    data: dict[str, Any] = {"fetch": fetch_result.model_dump(mode="json"), "verify": None}
    message = fetch_result.message or "Success"
    if fetch_result.is_succeed:
        verify_result = await orchestrator.verify(fetch_result.tracking_number, callback)
        data["verify"] = verify_result.model_dump(mode="json")
        message = verify_result.message or message

    logger.info(
        "payment_callback_handled",
        tracking_number=fetch_result.tracking_number,
        fetch_status=fetch_result.status.value,
        verify_status=(data["verify"] or {}).get("status"),
    )
    return success_response(data=data, message=message)


@router.get("/{tracking_number}", summary="Fetch payment status")
async def fetch_payment(
    tracking_number: int,
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    callback = await callback_request_from(request)
    result = await orchestrator.fetch(tracking_number, callback or None)
    return success_response(data=result.model_dump(mode="json"), message=result.message or "Success")


@router.post("/{tracking_number}/verify", summary="Verify payment")
async def verify_payment(
    tracking_number: int,
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    callback = await callback_request_from(request)
    result = await orchestrator.verify(tracking_number, callback or None)
    return success_response(data=result.model_dump(mode="json"), message=result.message or "Success")


@router.post("/{tracking_number}/cancel", summary="Cancel payment")
async def cancel_payment(
    tracking_number: int,
    payload: Optional[CancelIn] = None,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    result = await orchestrator.cancel(tracking_number, payload.reason if payload else None)
    return success_response(data=result.model_dump(mode="json"), message=result.message or "Success")


@router.post("/{tracking_number}/refund", summary="Refund payment")
async def refund_payment(
    tracking_number: int,
    payload: Optional[RefundIn] = None,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    amount = payload.amount if payload else Decimal("0")
    result = await orchestrator.refund(RefundInvoice(tracking_number=tracking_number, amount=amount))
    return success_response(data=result.model_dump(mode="json"), message=result.message or "Success")
