"""项目干系人关系管理。

授权（project_stakeholders）只由本模块与访问申请流程创建，只由本模块删除。
移除联系人最后一个授权时，联系人回到审批前状态：
清空口令、取消注册资格与邮箱验证，并删除未使用的注册令牌，
避免失去全部项目权限后仍保留可登录凭据。
"""

from dataclasses import dataclass, field
from datetime import timedelta
import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rfi_api.core.config import get_settings
from rfi_api.exceptions import (
    AccountStateConflict,
    AlreadyStakeholder,
    CrossClientViolation,
    Forbidden,
    NotFound,
    ServiceError,
)
from rfi_api.models import Contact, Project, ProjectStakeholder
from rfi_api.models.enums import RegistrationTokenType, StakeholderRole
from rfi_api.services.credentials import generate_temporary_password, hash_password
from rfi_api.services.notifications import InvitationEmail, build_registration_email
from rfi_api.services.permissions import ensure_can_invite, ensure_contact_in_scope
from rfi_api.services.principals import Principal, normalize_email
from rfi_api.services.registration import invalidate_unused_tokens, issue_registration_token
from rfi_api.services.soft_delete import get_visible, visibility_filter

logger = logging.getLogger(__name__)


@dataclass
class RemovalOutcome:
    """移除授权结果。"""

    contact: Contact
    # 是否因移除最后一个授权而重置联系人。
    contact_reset: bool
    remaining_grants: int


@dataclass
class InvitationOutcome:
    """邀请结果。"""

    contact: Contact
    grant: ProjectStakeholder
    contact_created: bool
    effects: list[InvitationEmail] = field(default_factory=list)


@dataclass
class ActivationOutcome:
    """管理员重新启用账号结果，仅在系统生成口令时返回临时口令。"""

    contact: Contact
    temporary_password: str | None


def _provenance(actor: Principal) -> dict[str, UUID | None]:
    if actor.is_internal:
        return {"added_by_user_id": actor.id, "added_by_contact_id": None}
    return {"added_by_user_id": None, "added_by_contact_id": actor.id}


def _get_grant(db: Session, *, project_id: UUID, contact_id: UUID) -> ProjectStakeholder | None:
    return db.execute(
        select(ProjectStakeholder)
        .where(ProjectStakeholder.project_id == project_id)
        .where(ProjectStakeholder.contact_id == contact_id)
    ).scalar_one_or_none()


def count_grants(db: Session, contact_id: UUID) -> int:
    """统计联系人在全部项目上的授权数。"""
    stmt = select(func.count()).select_from(ProjectStakeholder).where(ProjectStakeholder.contact_id == contact_id)
    return int(db.execute(stmt).scalar_one())


def _resolve_level(actor: Principal, level: int | None) -> int:
    """内部员工默认一级；一级干系人只能添加二级干系人。"""
    if level is not None and level not in (1, 2):
        raise ServiceError("干系人级别只能是 1 或 2。", stakeholder_level=level)
    if actor.is_internal:
        return level or 1
    if level not in (None, 2):
        raise Forbidden()
    return 2


def add_stakeholder(
    db: Session,
    *,
    project_id: UUID,
    contact_id: UUID,
    actor: Principal,
    level: int | None = None,
) -> ProjectStakeholder:
    """为项目添加干系人授权。"""
    project = get_visible(db, Project, project_id)
    if project is None:
        raise NotFound("项目不存在。")
    contact = get_visible(db, Contact, contact_id)
    if contact is None:
        raise NotFound("联系人不存在。")

    ensure_can_invite(actor, project_id)
    ensure_contact_in_scope(actor, contact)
    stakeholder_level = _resolve_level(actor, level)

    if contact.client_id != project.client_id:
        raise CrossClientViolation()
    if _get_grant(db, project_id=project_id, contact_id=contact_id) is not None:
        raise AlreadyStakeholder()

    grant = ProjectStakeholder(
        project_id=project_id,
        contact_id=contact_id,
        stakeholder_level=stakeholder_level,
        auto_approved=False,
        **_provenance(actor),
    )
    db.add(grant)
    db.flush()
    logger.info(
        "stakeholder added project_id=%s contact_id=%s level=%s actor=%s:%s",
        project_id,
        contact_id,
        stakeholder_level,
        actor.principal_type,
        actor.id,
    )
    return grant


def reset_contact_credentials(db: Session, contact: Contact) -> int:
    """将联系人重置为审批前状态，返回删除的未使用令牌数。"""
    contact.password_hash = None
    contact.registration_eligible = False
    contact.email_verified = False
    return invalidate_unused_tokens(db, contact.id)


def remove_stakeholder(
    db: Session,
    *,
    project_id: UUID,
    contact_id: UUID,
    actor: Principal,
) -> RemovalOutcome:
    """移除项目干系人授权。

    移除后联系人不再持有任何授权时重置联系人；
    仍有其他授权时不修改联系人。
    """
    ensure_can_invite(actor, project_id)
    grant = _get_grant(db, project_id=project_id, contact_id=contact_id)
    if grant is None:
        raise NotFound("干系人授权不存在。")
    contact = db.get(Contact, contact_id)
    if contact is None:
        raise NotFound("联系人不存在。")
    ensure_contact_in_scope(actor, contact)
    # 一级干系人只能移除二级干系人。
    if not actor.is_internal and grant.stakeholder_level != 2:
        raise Forbidden()

    db.delete(grant)
    db.flush()

    remaining = count_grants(db, contact_id)
    reset = False
    if remaining == 0:
        removed_tokens = reset_contact_credentials(db, contact)
        db.flush()
        reset = True
        logger.info(
            "stakeholder last grant removed, contact reset contact_id=%s removed_tokens=%s",
            contact_id,
            removed_tokens,
        )
    logger.info(
        "stakeholder removed project_id=%s contact_id=%s remaining=%s actor=%s:%s",
        project_id,
        contact_id,
        remaining,
        actor.principal_type,
        actor.id,
    )
    return RemovalOutcome(contact=contact, contact_reset=reset, remaining_grants=remaining)


def invite_stakeholder(
    db: Session,
    *,
    inviter: Principal,
    project_id: UUID,
    email: str,
    name: str,
    message: str | None = None,
) -> InvitationOutcome:
    """邀请外部人员以二级干系人身份加入项目。

    在项目所属客户下查找或创建联系人；同邮箱联系人只存在于其他客户时拒绝。
    联系人尚未注册时授予注册资格并签发邀请令牌。
    """
    project = get_visible(db, Project, project_id)
    if project is None:
        raise NotFound("项目不存在。")
    ensure_can_invite(inviter, project_id)

    normalized = normalize_email(email)
    candidates = (
        db.execute(
            select(Contact)
            .where(func.lower(Contact.email) == normalized)
            .where(visibility_filter(Contact))
            .order_by(Contact.created_at.asc())
        )
        .scalars()
        .all()
    )
    contact = next((item for item in candidates if item.client_id == project.client_id), None)
    created = False
    if contact is None:
        if candidates:
            raise CrossClientViolation()
        contact = Contact(
            client_id=project.client_id,
            name=name.strip(),
            email=normalized,
            role=StakeholderRole.L2,
            registration_eligible=True,
        )
        db.add(contact)
        db.flush()
        created = True

    if _get_grant(db, project_id=project_id, contact_id=contact.id) is not None:
        raise AlreadyStakeholder()

    grant = ProjectStakeholder(
        project_id=project_id,
        contact_id=contact.id,
        stakeholder_level=2,
        auto_approved=False,
        **_provenance(inviter),
    )
    db.add(grant)
    db.flush()

    token_value = None
    if contact.password_hash is None:
        contact.registration_eligible = True
        if not contact.role:
            contact.role = StakeholderRole.L2
        token = issue_registration_token(
            db,
            contact_id=contact.id,
            email=contact.email,
            project_ids=[project_id],
            token_type=RegistrationTokenType.INVITED,
            ttl=timedelta(days=get_settings().approval_token_ttl_days),
        )
        token_value = token.token

    effect = build_registration_email(
        kind="invitation",
        to_email=contact.email,
        to_name=contact.name,
        project_name=project.name,
        token=token_value,
        inviter_name=inviter.display_name,
        message=message,
    )
    logger.info(
        "stakeholder invited project_id=%s contact_id=%s created=%s inviter=%s:%s",
        project_id,
        contact.id,
        created,
        inviter.principal_type,
        inviter.id,
    )
    return InvitationOutcome(contact=contact, grant=grant, contact_created=created, effects=[effect])


def _get_stakeholder_contact(db: Session, contact_id: UUID) -> Contact:
    contact = get_visible(db, Contact, contact_id)
    if contact is None:
        raise NotFound("干系人不存在。")
    if contact.role not in (StakeholderRole.L1, StakeholderRole.L2):
        raise AccountStateConflict("该联系人不是干系人。")
    return contact


def deactivate_stakeholder_account(db: Session, contact_id: UUID) -> Contact:
    """管理员停用干系人账号：清空凭据，保留项目授权。"""
    contact = _get_stakeholder_contact(db, contact_id)
    if contact.password_hash is None:
        raise AccountStateConflict("干系人账号已处于停用状态。")

    removed_tokens = reset_contact_credentials(db, contact)
    db.flush()
    logger.info("stakeholder deactivated contact_id=%s removed_tokens=%s", contact_id, removed_tokens)
    return contact


def activate_stakeholder_account(db: Session, contact_id: UUID, password: str | None = None) -> ActivationOutcome:
    """管理员重新启用干系人账号，未提供口令时生成临时口令。"""
    contact = _get_stakeholder_contact(db, contact_id)
    if contact.password_hash is not None:
        raise AccountStateConflict("干系人账号已处于启用状态。")

    temporary = None if password else generate_temporary_password()
    contact.password_hash = hash_password(password or temporary)
    contact.registration_eligible = True
    contact.email_verified = True
    # 重新启用后旧的注册链接不再需要。
    invalidate_unused_tokens(db, contact_id)
    db.flush()
    logger.info("stakeholder activated contact_id=%s generated_password=%s", contact_id, temporary is not None)
    return ActivationOutcome(contact=contact, temporary_password=temporary)
