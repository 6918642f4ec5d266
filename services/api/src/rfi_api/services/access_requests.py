"""项目访问申请流程。

状态机：pending -> approved/rejected（管理员审批），
或提交时直接进入 auto_approved（邮箱域与项目现有干系人一致）。
除 pending 外均为终态。

服务只 `flush()`，由路由层统一 `commit()`；需要在提交后执行的邮件
以副作用列表形式随结果返回。
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from rfi_api.core.config import get_settings
from rfi_api.exceptions import (
    AlreadyProcessed,
    AlreadyStakeholder,
    CrossClientViolation,
    DuplicatePending,
    NotFound,
    ServiceError,
)
from rfi_api.models import AccessRequest, Contact, Project, ProjectStakeholder
from rfi_api.models.enums import (
    AccessRequestStatus,
    RegistrationTokenType,
    StakeholderRole,
    stakeholder_level_for_role,
)
from rfi_api.services.notifications import InvitationEmail, build_registration_email
from rfi_api.services.permissions import ensure_admin
from rfi_api.services.principals import Principal, email_domain, normalize_email
from rfi_api.services.registration import issue_registration_token
from rfi_api.services.soft_delete import get_visible, visibility_filter

logger = logging.getLogger(__name__)

# 管理员可做出的审批决定。
DECISIONS = {AccessRequestStatus.APPROVED, AccessRequestStatus.REJECTED}


@dataclass
class AccessRequestOutcome:
    """申请提交或审批结果。"""

    request: AccessRequest
    grant: ProjectStakeholder | None = None
    effects: list[InvitationEmail] = field(default_factory=list)

    @property
    def auto_approved(self) -> bool:
        return self.request.status == AccessRequestStatus.AUTO_APPROVED


@dataclass
class AccessRequestListItem:
    """管理员列表项，附带当前是否已有访问权限。"""

    request: AccessRequest
    contact: Contact | None
    project: Project | None
    currently_has_access: bool


def auto_approval_reason(domain: str) -> str:
    return f"Email domain matches existing stakeholder ({domain})"


def _get_grant(db: Session, *, project_id: UUID, contact_id: UUID) -> ProjectStakeholder | None:
    return db.execute(
        select(ProjectStakeholder)
        .where(ProjectStakeholder.project_id == project_id)
        .where(ProjectStakeholder.contact_id == contact_id)
    ).scalar_one_or_none()


def _has_pending(db: Session, *, project_id: UUID, contact_id: UUID) -> bool:
    stmt = (
        select(AccessRequest.id)
        .where(AccessRequest.project_id == project_id)
        .where(AccessRequest.contact_id == contact_id)
        .where(AccessRequest.status == AccessRequestStatus.PENDING)
    )
    return db.execute(stmt).first() is not None


def stakeholder_domains(db: Session, project_id: UUID) -> set[str]:
    """返回项目现有干系人的邮箱域集合（小写）。"""
    stmt = (
        select(Contact.email)
        .join(ProjectStakeholder, ProjectStakeholder.contact_id == Contact.id)
        .where(ProjectStakeholder.project_id == project_id)
        .where(visibility_filter(Contact))
    )
    return {domain for domain in (email_domain(item) for item in db.execute(stmt).scalars().all()) if domain}


def _auto_approval_domain(db: Session, contact: Contact, project_id: UUID) -> str | None:
    """判断是否满足域名自动审批条件，满足时返回匹配的域名。

    免费邮箱域（如 gmail.com）同样参与匹配，运维可通过
    `RFI_AUTO_APPROVAL_BLOCKED_DOMAINS` 排除指定域名。
    """
    domain = email_domain(contact.email)
    if not domain or domain in get_settings().blocked_auto_approval_domains:
        return None
    if domain in stakeholder_domains(db, project_id):
        return domain
    return None


def _load_pair(db: Session, *, contact_id: UUID, project_id: UUID) -> tuple[Contact, Project]:
    contact = get_visible(db, Contact, contact_id)
    if contact is None:
        raise NotFound("联系人不存在。")
    project = get_visible(db, Project, project_id)
    if project is None:
        raise NotFound("项目不存在。")
    if contact.client_id != project.client_id:
        raise CrossClientViolation()
    return contact, project


def _submit(
    db: Session,
    *,
    contact: Contact,
    project: Project,
    requested_role: str,
    justification: str | None,
) -> AccessRequestOutcome:
    if _get_grant(db, project_id=project.id, contact_id=contact.id) is not None:
        raise AlreadyStakeholder()
    if _has_pending(db, project_id=project.id, contact_id=contact.id):
        raise DuplicatePending()

    try:
        role = StakeholderRole(requested_role)
    except ValueError as exc:
        raise ServiceError("申请角色不合法。", requested_role=requested_role) from exc
    matched_domain = _auto_approval_domain(db, contact, project.id)
    now = datetime.now(timezone.utc)

    access_request = AccessRequest(
        contact_id=contact.id,
        project_id=project.id,
        requested_role=role,
        justification=justification,
        status=AccessRequestStatus.PENDING,
    )
    db.add(access_request)
    outcome = AccessRequestOutcome(request=access_request)

    if matched_domain:
        access_request.status = AccessRequestStatus.AUTO_APPROVED
        access_request.auto_approval_reason = auto_approval_reason(matched_domain)
        access_request.processed_at = now
        outcome.grant = ProjectStakeholder(
            project_id=project.id,
            contact_id=contact.id,
            stakeholder_level=stakeholder_level_for_role(role),
            added_by_contact_id=contact.id,
            auto_approved=True,
        )
        db.add(outcome.grant)

        # 尚未注册的联系人同时获得注册资格与注册链接。
        if contact.password_hash is None:
            contact.registration_eligible = True
            if not contact.role:
                contact.role = role
            db.flush()
            token = issue_registration_token(
                db,
                contact_id=contact.id,
                email=contact.email,
                project_ids=[project.id],
                token_type=RegistrationTokenType.AUTO_APPROVED,
                now=now,
            )
            outcome.effects.append(
                build_registration_email(
                    kind="auto_approved",
                    to_email=contact.email,
                    to_name=contact.name,
                    project_name=project.name,
                    token=token.token,
                )
            )
        logger.info(
            "access request auto approved contact_id=%s project_id=%s domain=%s",
            contact.id,
            project.id,
            matched_domain,
        )

    db.flush()
    if not matched_domain:
        logger.info("access request pending contact_id=%s project_id=%s", contact.id, project.id)
    return outcome


def submit_access_request(
    db: Session,
    *,
    contact_id: UUID,
    project_id: UUID,
    requested_role: str = StakeholderRole.L1,
    justification: str | None = None,
) -> AccessRequestOutcome:
    """提交访问申请。

    校验顺序：联系人/项目存在且同属一个客户 -> 未持有授权 -> 无待审核申请。
    邮箱域命中项目现有干系人时直接自动通过，并在同一事务内创建授权。
    """
    contact, project = _load_pair(db, contact_id=contact_id, project_id=project_id)
    return _submit(
        db,
        contact=contact,
        project=project,
        requested_role=requested_role,
        justification=justification,
    )


def find_project_by_reference(db: Session, reference: str) -> Project | None:
    """按项目编号或名称定位项目（不区分大小写，编号精确匹配优先）。"""
    needle = reference.strip().lower()
    if not needle:
        return None

    exact = db.execute(
        select(Project)
        .where(func.lower(Project.project_number) == needle)
        .where(visibility_filter(Project))
        .order_by(Project.created_at.asc())
    ).scalars().first()
    if exact is not None:
        return exact

    pattern = f"%{needle}%"
    return db.execute(
        select(Project)
        .where(or_(func.lower(Project.project_number).like(pattern), func.lower(Project.name).like(pattern)))
        .where(visibility_filter(Project))
        .order_by(Project.created_at.asc())
    ).scalars().first()


def submit_public_access_request(
    db: Session,
    *,
    name: str,
    email: str,
    project_reference: str,
    justification: str | None = None,
) -> AccessRequestOutcome:
    """公开（免登录）访问申请。

    在项目所属客户下查找联系人，不存在时新建（一级干系人角色，尚不具备注册资格），
    随后按普通申请流程处理，申请角色固定为一级干系人。
    """
    project = find_project_by_reference(db, project_reference)
    if project is None:
        raise NotFound("项目不存在。")

    normalized = normalize_email(email)
    contact = db.execute(
        select(Contact)
        .where(Contact.client_id == project.client_id)
        .where(func.lower(Contact.email) == normalized)
        .where(visibility_filter(Contact))
        .order_by(Contact.created_at.asc())
    ).scalars().first()
    if contact is None:
        contact = Contact(
            client_id=project.client_id,
            name=name.strip(),
            email=normalized,
            role=StakeholderRole.L1,
            registration_eligible=False,
        )
        db.add(contact)
        db.flush()
        logger.info("public access request created contact contact_id=%s", contact.id)

    return _submit(
        db,
        contact=contact,
        project=project,
        requested_role=StakeholderRole.L1,
        justification=justification,
    )


def process_access_request(
    db: Session,
    *,
    request_id: UUID,
    decision: str,
    acting: Principal,
) -> AccessRequestOutcome:
    """管理员审批访问申请。

    状态变更以条件更新（status='pending'）写入，并发审批只有一方成功，
    另一方得到 `AlreadyProcessed`。审批通过时在同一事务内：
    重置联系人注册状态、补建授权、替换注册令牌，并返回邀请邮件副作用。
    """
    ensure_admin(acting)
    if decision not in DECISIONS:
        raise ServiceError("审批决定只能是 approved 或 rejected。", decision=decision)

    access_request = db.execute(
        select(AccessRequest).where(AccessRequest.id == request_id).with_for_update()
    ).scalar_one_or_none()
    if access_request is None:
        raise NotFound("访问申请不存在。")
    if access_request.status != AccessRequestStatus.PENDING:
        raise AlreadyProcessed()

    now = datetime.now(timezone.utc)
    result = db.execute(
        update(AccessRequest)
        .where(AccessRequest.id == request_id)
        .where(AccessRequest.status == AccessRequestStatus.PENDING)
        .values(status=decision, processed_at=now, processed_by_id=acting.id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyProcessed()
    db.refresh(access_request)

    outcome = AccessRequestOutcome(request=access_request)
    if decision == AccessRequestStatus.REJECTED:
        logger.info("access request rejected request_id=%s admin_id=%s", request_id, acting.id)
        return outcome

    contact = get_visible(db, Contact, access_request.contact_id)
    if contact is None:
        raise NotFound("联系人不存在。")
    project = get_visible(db, Project, access_request.project_id)
    if project is None:
        raise NotFound("项目不存在。")

    # 强制重新走注册流程，旧凭据一律作废。
    contact.registration_eligible = True
    contact.role = access_request.requested_role
    contact.password_hash = None
    contact.email_verified = False

    grant = _get_grant(db, project_id=project.id, contact_id=contact.id)
    if grant is None:
        grant = ProjectStakeholder(
            project_id=project.id,
            contact_id=contact.id,
            stakeholder_level=stakeholder_level_for_role(access_request.requested_role),
            added_by_user_id=acting.id,
            auto_approved=False,
        )
        db.add(grant)
    outcome.grant = grant
    db.flush()

    token = issue_registration_token(
        db,
        contact_id=contact.id,
        email=contact.email,
        project_ids=[project.id],
        token_type=RegistrationTokenType.REQUESTED,
        ttl=timedelta(days=get_settings().approval_token_ttl_days),
        now=now,
    )
    outcome.effects.append(
        build_registration_email(
            kind="access_approved",
            to_email=contact.email,
            to_name=contact.name,
            project_name=project.name,
            token=token.token,
        )
    )
    logger.info(
        "access request approved request_id=%s contact_id=%s project_id=%s admin_id=%s",
        request_id,
        contact.id,
        project.id,
        acting.id,
    )
    return outcome


def list_access_requests(db: Session, *, status: str | None = None) -> list[AccessRequestListItem]:
    """管理员查看访问申请：待审核优先，其余按创建时间倒序。"""
    stmt = select(AccessRequest).order_by(
        case((AccessRequest.status == AccessRequestStatus.PENDING, 0), else_=1),
        AccessRequest.created_at.desc(),
        AccessRequest.id.asc(),
    )
    if status:
        stmt = stmt.where(AccessRequest.status == status)
    requests = db.execute(stmt).scalars().all()
    if not requests:
        return []

    contact_ids = {item.contact_id for item in requests}
    project_ids = {item.project_id for item in requests}
    contacts = {
        item.id: item for item in db.execute(select(Contact).where(Contact.id.in_(contact_ids))).scalars().all()
    }
    projects = {
        item.id: item for item in db.execute(select(Project).where(Project.id.in_(project_ids))).scalars().all()
    }
    granted_pairs = {
        (project_id, contact_id)
        for project_id, contact_id in db.execute(
            select(ProjectStakeholder.project_id, ProjectStakeholder.contact_id)
            .where(ProjectStakeholder.contact_id.in_(contact_ids))
            .where(ProjectStakeholder.project_id.in_(project_ids))
        ).all()
    }
    return [
        AccessRequestListItem(
            request=item,
            contact=contacts.get(item.contact_id),
            project=projects.get(item.project_id),
            currently_has_access=(item.project_id, item.contact_id) in granted_pairs,
        )
        for item in requests
    ]
