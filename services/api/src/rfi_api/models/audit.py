"""审计日志模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from rfi_api.models.base import Base, UUIDPrimaryKeyMixin


class AuditLog(Base, UUIDPrimaryKeyMixin):
    """授权、审批与账号变更的审计记录。

    员工与干系人共用一张表，通过 `actor_type` 区分操作人来源；
    `actor_email` 冗余保存，账号删除后仍可追溯。
    """

    __tablename__ = "audit_logs"

    # 操作人类型（user/contact/anonymous）。
    actor_type: Mapped[str] = mapped_column(String(32), nullable=False)
    # 员工或联系人 ID，公开申请为空。
    actor_id: Mapped[UUID | None] = mapped_column(index=True)
    actor_email: Mapped[str | None] = mapped_column(String(256))
    # 动作标识，例如 access_request.approved / stakeholder.remove。
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # 资源类型，例如 access_request/project_stakeholder/contact。
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(128), nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    # 与响应头 X-Request-Id 一致，便于从日志定位审计记录。
    request_id: Mapped[str | None] = mapped_column(String(64))
    ip: Mapped[str | None] = mapped_column(INET)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
