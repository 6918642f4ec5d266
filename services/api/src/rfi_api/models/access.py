"""访问申请与注册令牌模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from rfi_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from rfi_api.models.enums import AccessRequestStatus, RegistrationTokenType


class AccessRequest(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """联系人加入项目的申请。

    同一联系人 + 同一项目最多存在一条 pending 申请，
    部分唯一索引作为存储层兜底。
    """

    __tablename__ = "access_requests"
    __table_args__ = (
        Index(
            "uk_access_request_pending",
            "contact_id",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    # 申请人联系人 ID。
    contact_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 目标项目 ID。
    project_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 申请的干系人角色。
    requested_role: Mapped[str] = mapped_column(String(32), nullable=False)
    # 申请理由。
    justification: Mapped[str | None] = mapped_column(Text)
    # 自动审批原因说明。
    auto_approval_reason: Mapped[str | None] = mapped_column(String(256))
    # 申请状态。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=AccessRequestStatus.PENDING, index=True)
    # 审批时间。
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 审批管理员 ID。
    processed_by_id: Mapped[UUID | None] = mapped_column()


class RegistrationToken(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """一次性注册令牌，绑定邮箱、联系人与项目集合。"""

    __tablename__ = "registration_tokens"

    # 不可猜测的令牌值。
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    # 令牌绑定邮箱，兑换时必须一致。
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    # 令牌绑定联系人 ID。
    contact_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 令牌覆盖的项目 ID 列表（字符串化 UUID）。
    project_ids: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    # 令牌来源类型。
    token_type: Mapped[str] = mapped_column(String(32), nullable=False, default=RegistrationTokenType.AUTO_APPROVED)
    # 过期时间。
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 使用时间，为空表示尚未兑换。
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
