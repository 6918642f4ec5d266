"""项目与干系人授权模型。"""

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rfi_api.models.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Project(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """施工项目，归属唯一客户。"""

    __tablename__ = "projects"

    # 所属客户 ID。
    client_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 项目名称。
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    # 项目编号，公开访问申请时用于定位项目。
    project_number: Mapped[str | None] = mapped_column(String(64), index=True)
    # 启用状态（归档项目为 false）。
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ProjectStakeholder(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """联系人对项目的访问授权。

    说明：
    1. 同一项目 + 同一联系人唯一。
    2. 来源为员工添加（added_by_user_id）或联系人自身/一级干系人添加（added_by_contact_id），有且只有一个。
    """

    __tablename__ = "project_stakeholders"
    __table_args__ = (
        UniqueConstraint("project_id", "contact_id", name="uk_project_stakeholder"),
        CheckConstraint("stakeholder_level in (1, 2)", name="stakeholder_level"),
        CheckConstraint(
            "(added_by_user_id is null) <> (added_by_contact_id is null)",
            name="single_provenance",
        ),
    )

    # 项目 ID。
    project_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 联系人 ID。
    contact_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 授权级别（1/2）。
    stakeholder_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # 添加人（内部员工）。
    added_by_user_id: Mapped[UUID | None] = mapped_column()
    # 添加人（联系人本人或一级干系人）。
    added_by_contact_id: Mapped[UUID | None] = mapped_column()
    # 是否因邮箱域匹配自动授予。
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
