"""软删除可见性与一致性修复服务。

职责:
1. 统一生成 `deleted_at` 可见性谓词，其他模块不自行拼装。
2. 提供标记删除/恢复与内存过滤。
3. 依赖计数一律基于 ACTIVE_ONLY，避免已删除子记录永久阻塞父记录删除。
4. 修复历史上仅置 `active=false` 而未写 `deleted_at` 的不一致记录。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
import logging
from typing import Any, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, Select, func, select, true
from sqlalchemy.orm import Session

from rfi_api.exceptions import ClientHasDependents, NotFound
from rfi_api.models import Client, Contact, Project

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SoftDeleteMode(StrEnum):
    """可见性模式。"""

    ACTIVE_ONLY = "active_only"  # 仅未删除记录（默认）。
    DELETED_ONLY = "deleted_only"  # 仅已删除记录。
    ALL = "all"  # 不过滤。


@dataclass
class RepairReport:
    """一次不一致删除修复的结果。"""

    model: str
    fixed_ids: list[UUID] = field(default_factory=list)
    # 修复后仍处于不一致状态的记录数，正常应为 0。
    remaining: int = 0

    @property
    def fixed_count(self) -> int:
        return len(self.fixed_ids)


def visibility_filter(model: Any, mode: SoftDeleteMode = SoftDeleteMode.ACTIVE_ONLY) -> ColumnElement[bool]:
    """返回模型在指定模式下的可见性谓词。"""
    if mode == SoftDeleteMode.ACTIVE_ONLY:
        return model.deleted_at.is_(None)
    if mode == SoftDeleteMode.DELETED_ONLY:
        return model.deleted_at.is_not(None)
    return true()


def apply_visibility(stmt: Select, model: Any, mode: SoftDeleteMode = SoftDeleteMode.ACTIVE_ONLY) -> Select:
    """为查询语句追加可见性条件。"""
    if mode == SoftDeleteMode.ALL:
        return stmt
    return stmt.where(visibility_filter(model, mode))


def get_visible(db: Session, model: Any, entity_id: UUID) -> Any | None:
    """按 ID 读取未删除记录。"""
    stmt = apply_visibility(select(model).where(model.id == entity_id), model)
    return db.execute(stmt).scalar_one_or_none()


def is_deleted(entity: Any) -> bool:
    return entity.deleted_at is not None


def mark_deleted(entity: Any, now: datetime | None = None) -> None:
    """标记软删除，已删除记录保留原删除时间。"""
    if entity.deleted_at is None:
        entity.deleted_at = now or datetime.now(timezone.utc)


def mark_restored(entity: Any) -> None:
    entity.deleted_at = None


def filter_deleted(records: Iterable[T], mode: SoftDeleteMode = SoftDeleteMode.ACTIVE_ONLY) -> list[T]:
    """在内存中按可见性模式过滤记录。"""
    if mode == SoftDeleteMode.ALL:
        return list(records)
    if mode == SoftDeleteMode.DELETED_ONLY:
        return [item for item in records if is_deleted(item)]
    return [item for item in records if not is_deleted(item)]


def count_visible(
    db: Session,
    model: Any,
    *criteria: ColumnElement[bool],
    mode: SoftDeleteMode = SoftDeleteMode.ACTIVE_ONLY,
) -> int:
    """按可见性模式统计记录数，删除前依赖检查统一走此函数。"""
    stmt = apply_visibility(select(func.count()).select_from(model), model, mode)
    for criterion in criteria:
        stmt = stmt.where(criterion)
    return int(db.execute(stmt).scalar_one())


def _inconsistent_stmt(model: Any) -> Select:
    return select(model).where(model.active.is_(False)).where(model.deleted_at.is_(None))


def repair_inconsistent_deletes(db: Session, model: Any, *, now: datetime | None = None) -> RepairReport:
    """为 `active=false` 且未写删除时间的记录回填 `deleted_at`。

    删除时间优先取 `updated_at`（最后修改时间），其次 `created_at`，最后取当前时间。
    修复后的记录不再满足筛选条件，重复执行不会产生新变更。
    """
    if not hasattr(model, "active") or not hasattr(model, "deleted_at"):
        raise ValueError(f"{model.__name__} does not carry both active and deleted_at")

    fallback = now or datetime.now(timezone.utc)
    report = RepairReport(model=model.__tablename__)
    records = db.execute(_inconsistent_stmt(model)).scalars().all()
    for record in records:
        record.deleted_at = record.updated_at or record.created_at or fallback
        report.fixed_ids.append(record.id)
    db.flush()

    report.remaining = len(db.execute(_inconsistent_stmt(model)).scalars().all())
    logger.info(
        "soft delete repair model=%s fixed=%s remaining=%s",
        report.model,
        report.fixed_count,
        report.remaining,
    )
    return report


def client_deletion_blockers(db: Session, client_id: UUID) -> dict[str, int]:
    """统计阻塞客户删除的有效项目与联系人数量。"""
    return {
        "projects": count_visible(db, Project, Project.client_id == client_id),
        "contacts": count_visible(db, Contact, Contact.client_id == client_id),
    }


def soft_delete_client(db: Session, client_id: UUID) -> Client:
    """软删除客户，仍有有效项目或联系人时拒绝。"""
    client = get_visible(db, Client, client_id)
    if not client:
        raise NotFound("客户不存在。")

    blockers = client_deletion_blockers(db, client_id)
    if any(blockers.values()):
        raise ClientHasDependents(**blockers)

    mark_deleted(client)
    client.active = False
    db.flush()
    return client


def soft_delete_contact(db: Session, contact_id: UUID) -> Contact:
    """软删除联系人，同时置为停用，删除后不可再登录。"""
    contact = get_visible(db, Contact, contact_id)
    if not contact:
        raise NotFound("联系人不存在。")

    mark_deleted(contact)
    contact.active = False
    db.flush()
    return contact
