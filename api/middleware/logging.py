"""
请求/响应日志中间件
记录网关回调与支付接口的访问情况及耗时
"""
import time
from typing import Mapping

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger
from core.settings import payment_settings


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """记录请求开始/结束、状态码与耗时；不记录请求体"""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    # 查询参数中的敏感字段需要脱敏
    SENSITIVE_FIELDS = {"api_key", "x-api-key", "secret", "token"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "query_params": self._sanitize(request.query_params),
        }
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    def _sanitize(self, params: Mapping[str, str]) -> dict:
        sensitive = self.SENSITIVE_FIELDS | {payment_settings.token.query_name.lower()}
        return {k: ("***" if k.lower() in sensitive else v) for k, v in params.items()}

    def _log_response(self, response: Response, duration: float, request_info: dict):
        status_code = response.status_code
        log_data = {"status_code": status_code, "duration": duration, **request_info}

        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
