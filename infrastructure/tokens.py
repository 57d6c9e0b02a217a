"""
查询字符串令牌提供者

为每张发票生成随机令牌并附加到回调地址，网关回调时从同名参数取回。
"""
from __future__ import annotations

import uuid
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from application.dtos.payments import CallbackRequest, Invoice
from core.logging_config import get_logger


logger = get_logger(__name__)


def append_query_param(url: str, name: str, value: str) -> str:
    """向 URL 追加查询参数，保留原有参数与片段"""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


class QueryStringPaymentTokenProvider:
    """令牌为 uuid4 十六进制字符串"""

    def __init__(self, query_name: str = "paymentToken") -> None:
        self.query_name = query_name

    async def provide_token(self, invoice: Invoice) -> str:
        token = uuid.uuid4().hex
        invoice.callback_url = append_query_param(invoice.callback_url, self.query_name, token)
        return token

    async def retrieve_token(self, request: CallbackRequest) -> Optional[str]:
        token = request.get(self.query_name)
        if not token:
            logger.warning("payment_token_missing", query_name=self.query_name)
            return None
        return token
