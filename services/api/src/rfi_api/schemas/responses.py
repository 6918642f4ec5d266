"""通用响应数据结构。"""

from pydantic import Field

from rfi_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查结果。"""

    status: str = Field(description="服务状态（ok/ready）。")
    service: str = Field(description="服务名称。")
    env: str = Field(description="运行环境标识。")
    database: str | None = Field(default=None, description="数据库方言，仅就绪探针返回。")
