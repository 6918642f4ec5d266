"""内部员工身份模型。"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from rfi_api.models.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin
from rfi_api.models.enums import UserRole


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """内部员工账号，可访问全部项目。"""

    __tablename__ = "users"

    # 登录邮箱，系统内全局唯一；允许与某个外部联系人邮箱相同。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 前端展示名。
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    # 员工角色（user/manager/admin）。
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=UserRole.USER)
    # 账号启用状态；历史数据中曾仅置 false 代替删除。
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 最近一次登录时间。
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
