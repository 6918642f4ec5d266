"""统一响应包裹结构。

成功：`{request_id, data, meta}`；失败：`{request_id, error: {code, message, details}}`。
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """基础结构，开启对象映射能力。"""

    model_config = ConfigDict(from_attributes=True)


class ErrorDetails(BaseModel):
    """错误细节，业务异常可附带额外字段（如客户删除阻塞数量）。"""

    model_config = ConfigDict(extra="allow")

    status_code: int | None = Field(default=None, description="HTTP 状态码。")
    reason: str | None = Field(default=None, description="错误类别，例如 forbidden/token_invalid。")
    suggestion: str | None = Field(default=None, description="处理建议。")
    method: str | None = Field(default=None, description="请求方法。")
    path: str | None = Field(default=None, description="请求路径。")
    timestamp: str | None = Field(default=None, description="错误发生时间（UTC）。")


class ErrorPayload(BaseSchema):
    """错误主体。"""

    code: str = Field(description="稳定错误码，例如 TOKEN_EXPIRED、CROSS_CLIENT_VIOLATION。")
    message: str = Field(description="面向用户的错误信息，权限与认证失败不暴露具体原因。")
    details: ErrorDetails = Field(default_factory=ErrorDetails, description="错误细节。")


class ErrorResponse(BaseSchema):
    """统一错误响应。"""

    request_id: str | None = Field(default=None, description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    error: ErrorPayload = Field(description="错误主体。")


T = TypeVar("T")


class SuccessResponse(BaseSchema, Generic[T]):
    """统一成功响应。"""

    request_id: str = Field(description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    data: T = Field(description="业务返回数据主体。")
    meta: dict[str, Any] = Field(default_factory=dict, description="处理耗时、请求路径等元信息。")
