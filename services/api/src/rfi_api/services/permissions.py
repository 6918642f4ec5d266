"""项目级权限判定服务。

判定只依赖主体的统一视图（is_internal/role/project_access/client_id），
不关心主体来自哪张表。拒绝时统一抛出 `Forbidden`，不说明命中的规则。
"""

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from rfi_api.exceptions import Forbidden
from rfi_api.models import Contact, ProjectStakeholder
from rfi_api.models.enums import StakeholderRole
from rfi_api.services.principals import Principal
from rfi_api.services.soft_delete import visibility_filter


def can_access_project(principal: Principal, project_id: UUID) -> bool:
    """内部员工可访问全部项目，干系人仅可访问已授权项目。"""
    if principal.is_internal:
        return True
    return project_id in principal.project_access


def can_invite(principal: Principal, project_id: UUID | None = None) -> bool:
    """内部员工与一级干系人可邀请，二级干系人不可邀请。

    指定项目时，一级干系人只能邀请到自己已有权限的项目。
    """
    if principal.is_internal:
        return True
    if principal.role != StakeholderRole.L1:
        return False
    if project_id is None:
        return True
    return project_id in principal.project_access


def can_administer(principal: Principal) -> bool:
    """仅管理员角色的内部员工具备管理权限。"""
    return principal.is_internal and principal.is_admin


def ensure_project_access(principal: Principal, project_id: UUID) -> None:
    if not can_access_project(principal, project_id):
        raise Forbidden()


def ensure_can_invite(principal: Principal, project_id: UUID | None = None) -> None:
    if not can_invite(principal, project_id):
        raise Forbidden()


def ensure_admin(principal: Principal) -> None:
    if not can_administer(principal):
        raise Forbidden()


def ensure_internal(principal: Principal) -> None:
    if not principal.is_internal:
        raise Forbidden()


def ensure_contact_in_scope(principal: Principal, contact: Contact) -> None:
    """干系人只能查看或操作本客户下的联系人。"""
    if principal.is_internal:
        return
    if contact.client_id != principal.client_id:
        raise Forbidden()


def list_project_stakeholders(
    db: Session,
    principal: Principal,
    project_id: UUID,
) -> list[tuple[ProjectStakeholder, Contact]]:
    """按主体可见范围列出项目干系人。

    判定规则：
    1. 内部员工与一级干系人可见项目全部干系人。
    2. 二级干系人仅可见自己及邀请自己的一级干系人。
    3. 干系人结果始终限定在本客户联系人内；无项目权限时返回空列表。
    """
    if not can_access_project(principal, project_id):
        return []

    stmt = (
        select(ProjectStakeholder, Contact)
        .join(Contact, Contact.id == ProjectStakeholder.contact_id)
        .where(ProjectStakeholder.project_id == project_id)
        .where(visibility_filter(Contact))
        .order_by(ProjectStakeholder.created_at.desc(), ProjectStakeholder.id.asc())
    )

    if not principal.is_internal:
        stmt = stmt.where(Contact.client_id == principal.client_id)

        if principal.role == StakeholderRole.L2:
            own_grant = db.execute(
                select(ProjectStakeholder)
                .where(ProjectStakeholder.project_id == project_id)
                .where(ProjectStakeholder.contact_id == principal.id)
            ).scalar_one_or_none()
            if own_grant is None:
                return []
            visible_ids = [principal.id]
            if own_grant.added_by_contact_id is not None:
                visible_ids.append(own_grant.added_by_contact_id)
            stmt = stmt.where(or_(*(ProjectStakeholder.contact_id == item for item in visible_ids)))

    return [(grant, contact) for grant, contact in db.execute(stmt).all()]
