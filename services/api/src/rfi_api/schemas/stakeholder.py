"""项目干系人请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rfi_api.schemas.common import BaseSchema


class StakeholderAddRequest(BaseModel):
    """添加项目干系人。"""

    contact_id: UUID = Field(description="联系人 ID。")
    stakeholder_level: int | None = Field(
        default=None,
        ge=1,
        le=2,
        description="授权级别；内部员工默认 1，一级干系人只能添加 2。",
    )


class StakeholderData(BaseSchema):
    """项目干系人。"""

    id: UUID = Field(description="授权 ID。")
    project_id: UUID = Field(description="项目 ID。")
    contact_id: UUID = Field(description="联系人 ID。")
    contact_name: str | None = Field(default=None, description="联系人姓名。")
    contact_email: str | None = Field(default=None, description="联系人邮箱。")
    stakeholder_level: int = Field(description="授权级别。")
    auto_approved: bool = Field(description="是否自动授予。")
    added_by_user_id: UUID | None = Field(default=None, description="添加人（员工）。")
    added_by_contact_id: UUID | None = Field(default=None, description="添加人（联系人）。")
    created_at: datetime | None = Field(default=None, description="授权时间。")


class StakeholderRemoveData(BaseSchema):
    """移除干系人结果。"""

    project_id: UUID = Field(description="项目 ID。")
    contact_id: UUID = Field(description="联系人 ID。")
    removed: bool = Field(description="是否已移除。")
    contact_reset: bool = Field(description="联系人是否因失去全部授权而被重置。")
    remaining_grants: int = Field(description="联系人剩余授权数。")


class InvitationCreateRequest(BaseModel):
    """邀请二级干系人。"""

    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="被邀请人邮箱。",
    )
    name: str = Field(min_length=1, max_length=128, description="被邀请人姓名。")
    message: str | None = Field(default=None, max_length=2000, description="附言。")


class InvitationData(BaseSchema):
    """邀请结果。"""

    contact_id: UUID = Field(description="联系人 ID。")
    grant_id: UUID = Field(description="授权 ID。")
    contact_created: bool = Field(description="是否新建了联系人。")
    registration_required: bool = Field(description="被邀请人是否需要先完成注册。")
    email_delivered: bool = Field(description="邀请邮件是否投递成功。")
