"""维护类接口请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rfi_api.schemas.common import BaseSchema


class RepairReportData(BaseSchema):
    """单表不一致删除修复结果。"""

    model: str = Field(description="数据表名。")
    fixed_count: int = Field(description="本次回填删除时间的记录数。")
    fixed_ids: list[UUID] = Field(description="本次修复的记录 ID。")
    remaining: int = Field(description="修复后仍不一致的记录数。")


class SoftDeleteRepairData(BaseSchema):
    """软删除修复汇总。"""

    reports: list[RepairReportData] = Field(description="各表修复结果。")


class TokenCleanupRequest(BaseModel):
    """过期注册令牌清理参数。"""

    retention_days: int | None = Field(default=None, ge=0, le=3650, description="过期后保留天数，默认取配置。")


class TokenCleanupData(BaseSchema):
    """令牌清理结果。"""

    deleted: int = Field(description="删除的令牌数量。")


class StakeholderActivateRequest(BaseModel):
    """重新启用干系人账号。"""

    password: str | None = Field(default=None, min_length=8, max_length=128, description="可选，指定新口令。")


class StakeholderAccountData(BaseSchema):
    """干系人账号状态。"""

    contact_id: UUID = Field(description="联系人 ID。")
    email: str = Field(description="联系人邮箱。")
    is_active: bool = Field(description="是否可登录。")
    temporary_password: str | None = Field(default=None, description="系统生成的临时口令，仅返回一次。")


class RegistrationStatusData(BaseSchema):
    """联系人注册状态。"""

    contact_id: UUID = Field(description="联系人 ID。")
    is_registered: bool = Field(description="是否已完成注册。")
    is_eligible: bool = Field(description="是否具备注册资格。")
    has_valid_token: bool = Field(description="是否存在未使用且未过期的注册令牌。")
    latest_token_type: str | None = Field(default=None, description="最近一次令牌类型。")
    latest_token_expires_at: datetime | None = Field(default=None, description="最近一次令牌过期时间。")
    latest_token_used_at: datetime | None = Field(default=None, description="最近一次令牌使用时间。")


class DeletedEntityData(BaseSchema):
    """软删除结果。"""

    id: UUID = Field(description="实体 ID。")
    deleted: bool = Field(description="是否已删除。")
    deleted_at: datetime | None = Field(default=None, description="删除时间。")
