"""访问申请请求与响应结构。"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from rfi_api.schemas.common import BaseSchema


class AccessRequestCreateRequest(BaseModel):
    """已有联系人提交访问申请。"""

    contact_id: UUID = Field(description="申请人联系人 ID。")
    project_id: UUID = Field(description="目标项目 ID。")
    requested_role: Literal["stakeholder_l1", "stakeholder_l2"] = Field(
        default="stakeholder_l1",
        description="申请的干系人角色。",
    )
    justification: str | None = Field(default=None, max_length=2000, description="申请理由。")


class PublicAccessRequestCreateRequest(BaseModel):
    """公开访问申请（免登录）。"""

    name: str = Field(min_length=2, max_length=128, description="申请人姓名。")
    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="申请人邮箱。",
        examples=["newuser@acme.com"],
    )
    project_number: str = Field(min_length=3, max_length=256, description="项目编号或名称。")
    reason: str = Field(min_length=10, max_length=2000, description="申请理由。")


class AccessRequestDecisionRequest(BaseModel):
    """管理员审批决定。"""

    status: Literal["approved", "rejected"] = Field(description="审批结果。")


class AccessRequestData(BaseSchema):
    """访问申请。"""

    id: UUID = Field(description="申请 ID。")
    contact_id: UUID = Field(description="联系人 ID。")
    project_id: UUID = Field(description="项目 ID。")
    requested_role: str = Field(description="申请角色。")
    justification: str | None = Field(default=None, description="申请理由。")
    auto_approval_reason: str | None = Field(default=None, description="自动审批原因。")
    status: str = Field(description="申请状态。")
    processed_at: datetime | None = Field(default=None, description="审批时间。")
    processed_by_id: UUID | None = Field(default=None, description="审批管理员 ID。")
    created_at: datetime | None = Field(default=None, description="创建时间。")


class AccessRequestSubmitData(BaseSchema):
    """申请提交结果。"""

    request: AccessRequestData = Field(description="访问申请。")
    auto_approved: bool = Field(description="是否已自动通过。")
    grant_id: UUID | None = Field(default=None, description="自动通过时创建的授权 ID。")


class AccessRequestDecisionData(BaseSchema):
    """审批结果。"""

    request: AccessRequestData = Field(description="访问申请。")
    grant_id: UUID | None = Field(default=None, description="审批通过后的授权 ID。")
    email_delivered: bool | None = Field(default=None, description="邀请邮件是否投递成功，无邮件时为空。")


class AccessRequestListItemData(AccessRequestData):
    """管理员列表项。"""

    contact_name: str | None = Field(default=None, description="联系人姓名。")
    contact_email: str | None = Field(default=None, description="联系人邮箱。")
    project_name: str | None = Field(default=None, description="项目名称。")
    currently_has_access: bool = Field(description="联系人当前是否已持有该项目授权。")
