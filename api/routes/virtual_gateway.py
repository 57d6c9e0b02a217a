"""
Virtual gateway page.

Stands in for a remote payment site during development: shows the invoice
and posts the customer's choice back to the shop's callback URL.
"""
from __future__ import annotations

import uuid
from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from api.routes.payments import callback_request_from
from core.logging_config import get_logger


router = APIRouter(tags=["Virtual Gateway"])
logger = get_logger(__name__)


PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Virtual Gateway</title>
  <style>
    body {{ font-family: sans-serif; max-width: 480px; margin: 40px auto; }}
    table {{ width: 100%; border-collapse: collapse; margin-bottom: 24px; }}
    td {{ padding: 6px; border-bottom: 1px solid #ddd; }}
    form {{ display: inline-block; margin-right: 8px; }}
    button {{ padding: 8px 24px; }}
  </style>
</head>
<body>
  <h2>Virtual Gateway</h2>
  <p>No real money is transferred.</p>
  <table>
    <tr><td>Tracking number</td><td>{tracking_number}</td></tr>
    <tr><td>Amount</td><td>{amount}</td></tr>
    <tr><td>Transaction code</td><td>{transaction_code}</td></tr>
  </table>
  <form method="post" action="{redirect_url}">
    <input type="hidden" name="result" value="true">
    <input type="hidden" name="TransactionCode" value="{transaction_code}">
    <input type="hidden" name="trackingNumber" value="{tracking_number}">
    <button type="submit">Pay</button>
  </form>
  <form method="post" action="{redirect_url}">
    <input type="hidden" name="result" value="false">
    <input type="hidden" name="TransactionCode" value="">
    <input type="hidden" name="trackingNumber" value="{tracking_number}">
    <button type="submit">Cancel</button>
  </form>
</body>
</html>
"""


@router.api_route("/virtual-gateway", methods=["GET", "POST"], response_class=HTMLResponse)
async def virtual_gateway(request: Request) -> HTMLResponse:
    params = await callback_request_from(request)
    tracking_number = params.get("trackingNumber")
    redirect_url = params.get("redirectUrl")

    if params.get("CommandType", "").lower() != "request" or not tracking_number or not redirect_url:
        logger.warning("virtual_gateway_invalid_request", params=sorted(params.params))
        return HTMLResponse(
            "<h2>Virtual Gateway</h2><p>Invalid request: CommandType, trackingNumber "
            "and redirectUrl are required.</p>",
            status_code=400,
        )

    transaction_code = uuid.uuid4().hex[:12].upper()
    logger.info("virtual_gateway_page", tracking_number=tracking_number)
    return HTMLResponse(PAGE.format(
        tracking_number=escape(tracking_number),
        amount=escape(params.get("amount", "")),
        transaction_code=transaction_code,
        redirect_url=escape(redirect_url, quote=True),
    ))
