"""对象映射基础模型与通用混入。

表之间只保留逻辑关联（不声明数据库外键），
跨表一致性由服务层在同一事务内维护。
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime, MetaData, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """全局对象映射声明基类。"""

    metadata = MetaData(
        naming_convention={
            "pk": "pk_%(table_name)s",
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "uq": "uk_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
        }
    )


class UUIDPrimaryKeyMixin:
    """UUID 主键，由应用侧生成，flush 前即可引用。"""

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4, comment="主键 ID。")


class TimestampMixin:
    """创建与更新时间。

    应用侧取值保证同一请求内的多次写入可按时间排序；
    数据库默认值只兜底迁移脚本直接插入的数据。
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utc_now,
        server_default=func.now(),
        nullable=False,
        comment="创建时间。",
    )
    # 软删除修复时作为删除时间的近似值。
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utc_now,
        onupdate=_utc_now,
        server_default=func.now(),
        nullable=False,
        comment="更新时间。",
    )


class SoftDeleteMixin:
    """软删除时间戳。

    只声明列，过滤条件统一由 `rfi_api.services.soft_delete` 生成，
    其他模块不直接拼装 `deleted_at` 谓词。
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None, index=True, comment="软删除时间。"
    )
