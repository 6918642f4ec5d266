"""应用中间件注册。"""

import logging
import re
from time import perf_counter
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

# 允许沿用网关传入的追踪 ID，格式不符时重新生成。
_INBOUND_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def _resolve_request_id(request: Request) -> str:
    inbound = request.headers.get("x-request-id", "").strip()
    if _INBOUND_REQUEST_ID.match(inbound):
        return inbound
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID 与耗时，并通过响应头返回。"""
    request.state.request_id = _resolve_request_id(request)
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    elapsed_ms = (perf_counter() - request.state.request_started_at) * 1000
    response.headers["X-Request-Id"] = request.state.request_id
    response.headers["X-Process-Time-Ms"] = str(round(elapsed_ms, 2))

    # 写操作与失败请求记 INFO，其余仅 DEBUG。
    level = logging.INFO if request.method != "GET" or response.status_code >= 400 else logging.DEBUG
    logger.log(
        level,
        "request done request_id=%s method=%s path=%s status=%s elapsed_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_id_middleware)
