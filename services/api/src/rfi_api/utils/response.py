"""统一响应结构与时间工具。"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "internal server error"

_SUCCESS_MESSAGE_BY_METHOD = {
    "GET": "查询成功。",
    "POST": "操作成功。",
    "PATCH": "更新成功。",
    "DELETE": "删除成功。",
}


def as_utc(value: datetime) -> datetime:
    """补齐时区信息。

    SQLite 读回的时间不带时区，按 UTC 解释后再参与比较或输出。
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_utc(value: datetime | None = None) -> str:
    """输出以 `Z` 结尾的 UTC ISO 时间串，默认取当前时间。"""
    moment = as_utc(value) if value is not None else datetime.now(timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def _request_meta(request: Request) -> dict[str, Any]:
    return {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": iso_utc(),
    }


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造统一成功响应结构，列表数据附带 `count`。"""
    final_meta = {
        "message": _SUCCESS_MESSAGE_BY_METHOD.get(request.method.upper(), "操作成功。"),
        **_request_meta(request),
        "process_ms": None,
    }
    started_at = getattr(request.state, "request_started_at", None)
    if isinstance(started_at, float):
        final_meta["process_ms"] = int((perf_counter() - started_at) * 1000)
    if isinstance(data, list):
        final_meta["count"] = len(data)
    if meta:
        final_meta.update(meta)
    return {
        "request_id": request.state.request_id,
        "data": data,
        "meta": final_meta,
    }


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造统一错误响应结构。"""
    final_details = _request_meta(request)
    if details:
        final_details.update(details)
    return {
        "request_id": getattr(request.state, "request_id", None),
        "error": {
            "code": code,
            "message": message,
            "details": final_details,
        },
    }
