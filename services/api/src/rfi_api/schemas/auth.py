"""登录、登出与注册请求结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rfi_api.schemas.common import BaseSchema

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AuthLoginRequest(BaseModel):
    """登录请求，内部员工与外部干系人共用。"""

    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=EMAIL_PATTERN,
        description="登录邮箱。",
        examples=["alice@example.com"],
    )
    # 登录不校验口令强度，避免以 422 区分账号是否存在。
    password: str = Field(min_length=1, max_length=128, description="登录密码。", examples=["StrongPassw0rd!"])


class PrincipalData(BaseSchema):
    """当前认证主体视图。"""

    id: UUID = Field(description="主体 ID（员工或联系人）。")
    email: str = Field(description="登录邮箱。")
    display_name: str = Field(description="展示名。")
    role: str = Field(description="角色（user/manager/admin/stakeholder_l1/stakeholder_l2）。")
    user_type: str = Field(description="主体类型（internal/stakeholder）。")
    client_id: UUID | None = Field(default=None, description="所属客户 ID，仅干系人有值。")
    project_access: list[UUID] = Field(default_factory=list, description="已授权项目 ID，仅干系人有值。")
    can_invite: bool = Field(description="是否可邀请干系人。")
    is_admin: bool = Field(description="是否为管理员。")


class AuthLoginData(BaseSchema):
    """登录结果结构。"""

    access_token: str = Field(description="访问令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    expires_at: datetime = Field(description="令牌过期时间（UTC）。")
    expires_in: int = Field(description="距过期剩余秒数。")
    principal: PrincipalData = Field(description="登录主体。")


class AuthLogoutData(BaseSchema):
    """登出结果结构。"""

    logged_out: bool = Field(description="是否已完成登出。")
    revoked: bool = Field(description="当前 token 是否已加入黑名单。")


class RegistrationTokenData(BaseSchema):
    """注册页令牌信息。"""

    email: str = Field(description="令牌绑定邮箱。")
    contact_id: UUID = Field(description="联系人 ID。")
    contact_name: str = Field(description="联系人姓名。")
    project_ids: list[str] = Field(description="令牌覆盖项目 ID。")
    token_type: str = Field(description="令牌来源类型。")
    expires_at: datetime = Field(description="过期时间（UTC）。")


class AuthRegisterRequest(BaseModel):
    """凭注册令牌完成干系人注册。"""

    token: str = Field(min_length=1, max_length=128, description="注册令牌。")
    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=EMAIL_PATTERN,
        description="注册邮箱，必须与邀请邮箱一致。",
        examples=["bob@acme.com"],
    )
    password: str = Field(min_length=8, max_length=128, description="登录密码。", examples=["StrongPassw0rd!"])
    name: str | None = Field(default=None, min_length=1, max_length=128, description="可选，更新联系人姓名。")
