"""客户与外部联系人模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from rfi_api.models.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Client(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """客户实体，拥有联系人与项目。"""

    __tablename__ = "clients"

    # 客户名称。
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    # 启用状态，停用不等于删除。
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Contact(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """客户联系人，注册后即为可登录的外部干系人。

    说明：
    1. `password_hash` 非空是能否登录的唯一依据，与 `active` 无关。
    2. `role` 在审批或邀请前可为空。
    """

    __tablename__ = "contacts"

    # 所属客户 ID（逻辑关联 clients.id，不声明数据库外键）。
    client_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 联系人姓名。
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 联系邮箱，同时作为干系人登录名。
    email: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(64))
    title: Mapped[str | None] = mapped_column(String(128))
    # 口令哈希，完成注册前为空。
    password_hash: Mapped[str | None] = mapped_column(String(256))
    # 干系人角色（stakeholder_l1/stakeholder_l2）。
    role: Mapped[str | None] = mapped_column(String(32))
    # 邮箱是否已通过注册令牌验证。
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 是否允许通过注册令牌完成注册。
    registration_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 历史遗留启用标记，不参与登录判断。
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 最近一次登录时间。
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
