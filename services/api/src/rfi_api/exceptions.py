"""业务异常定义与应用异常处理注册。

业务异常均继承自 `HTTPException`，并携带结构化 detail
`{code, message, details}`，由统一处理器包装为标准错误结构。
服务层直接抛出，路由层无需二次转换。
"""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rfi_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger(__name__)


class ServiceError(HTTPException):
    """带稳定错误码的业务异常基类。"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"
    kind = "bad_request"
    message = "请求参数不合法。"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(
            status_code=self.status_code,
            detail={
                "code": self.code,
                "message": message or self.message,
                "details": {"reason": self.kind, **details},
            },
        )

    @property
    def error_code(self) -> str:
        return self.detail["code"]


class InvalidCredentials(ServiceError):
    """认证失败，不区分账号不存在与口令错误。"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    kind = "invalid_credentials"
    message = "邮箱或密码错误。"


class Forbidden(ServiceError):
    """权限校验未通过，不暴露具体命中的规则。"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    kind = "forbidden"
    message = "无权限访问该资源。"

    def __init__(self) -> None:
        super().__init__()


class NotFound(ServiceError):
    """目标实体不存在或已被软删除过滤。"""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    kind = "not_found"
    message = "请求资源不存在。"


class Conflict(ServiceError):
    """唯一性或状态冲突。"""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    kind = "conflict"
    message = "请求与当前数据状态冲突。"


class AlreadyStakeholder(Conflict):
    code = "ALREADY_STAKEHOLDER"
    message = "该联系人已是此项目的干系人。"


class DuplicatePending(Conflict):
    code = "DUPLICATE_PENDING"
    message = "该项目已有待审核的访问申请。"


class AlreadyProcessed(Conflict):
    code = "ALREADY_PROCESSED"
    message = "该访问申请已处理。"


class CrossClientViolation(Conflict):
    code = "CROSS_CLIENT_VIOLATION"
    message = "联系人与项目不属于同一客户。"


class ClientHasDependents(Conflict):
    code = "CLIENT_HAS_DEPENDENTS"
    message = "客户下仍有有效的项目或联系人，无法删除。"


class AccountStateConflict(Conflict):
    code = "ACCOUNT_STATE_CONFLICT"
    message = "干系人账号状态不允许该操作。"


class TokenInvalid(ServiceError):
    """注册令牌不可用。"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "TOKEN_INVALID"
    kind = "token_invalid"
    message = "注册令牌无效。"


class TokenNotFound(TokenInvalid):
    code = "TOKEN_NOT_FOUND"
    message = "注册令牌不存在。"


class TokenExpired(TokenInvalid):
    code = "TOKEN_EXPIRED"
    message = "注册令牌已过期。"


class TokenAlreadyUsed(TokenInvalid):
    code = "TOKEN_ALREADY_USED"
    message = "注册令牌已被使用。"


class EmailMismatch(TokenInvalid):
    code = "EMAIL_MISMATCH"
    message = "邮箱与邀请不一致。"


def _default_http_error_code(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "BAD_REQUEST"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "UNAUTHORIZED"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "FORBIDDEN"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND"
    if status_code == status.HTTP_409_CONFLICT:
        return "CONFLICT"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "VALIDATION_ERROR"
    return "HTTP_ERROR"


def _default_http_message(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "请求参数不合法。"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "未登录或登录状态已失效。"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "无权限访问该资源。"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "请求资源不存在。"
    if status_code == status.HTTP_409_CONFLICT:
        return "请求与当前数据状态冲突。"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "请求参数校验失败。"
    return "请求处理失败。"


def _default_http_suggestion(status_code: int) -> str:
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "请重新登录并携带有效访问令牌。"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "请确认当前账号是否具备该操作权限。"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "请确认资源 ID 是否正确，或资源是否已被删除。"
    if status_code == status.HTTP_409_CONFLICT:
        return "请刷新页面获取最新数据后重试。"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "请根据错误字段提示修正请求参数后重试。"
    return "请稍后重试，若持续失败请联系管理员。"


def _normalize_raw_detail_message(raw: str, status_code: int) -> str:
    normalized = raw.strip().lower()
    if normalized == "forbidden":
        return _default_http_message(status.HTTP_403_FORBIDDEN)
    if normalized in {"unauthorized", "invalid credentials"}:
        return _default_http_message(status.HTTP_401_UNAUTHORIZED)
    return raw


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    code = _default_http_error_code(status_code)
    message = _default_http_message(status_code)
    details: dict[str, object] = {
        "status_code": status_code,
        "reason": code.lower(),
        "suggestion": _default_http_suggestion(status_code),
    }

    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or detail.get("detail") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
        elif raw_details is not None:
            details["details"] = raw_details

        for key, value in detail.items():
            if key in {"code", "message", "details"}:
                continue
            details[key] = value
        return code, message, details

    if isinstance(detail, str):
        return code, _normalize_raw_detail_message(detail, status_code), details

    if detail is not None:
        details["detail"] = detail
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常与业务异常统一包装为标准错误结构。"""
    code, message, details = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(
            request,
            code="VALIDATION_ERROR",
            message="请求参数校验失败。",
            details={
                "status_code": status.HTTP_422_UNPROCESSABLE_CONTENT,
                "reason": "validation_error",
                "suggestion": _default_http_suggestion(status.HTTP_422_UNPROCESSABLE_CONTENT),
                "errors": normalized_errors,
            },
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.exception(
        "unhandled error request_id=%s path=%s",
        getattr(request.state, "request_id", None),
        request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "reason": "unexpected_exception",
                "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
            },
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
