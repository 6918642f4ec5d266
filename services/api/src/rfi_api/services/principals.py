"""认证主体解析服务。

查找顺序固定为：先内部员工（users），后外部联系人（contacts）。
同一邮箱允许同时存在于两张表，此时始终按内部员工处理，
联系人表不再参与本次认证。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rfi_api.core.security import UNAUTHORIZED, TokenClaims
from rfi_api.exceptions import InvalidCredentials
from rfi_api.models import Contact, Project, ProjectStakeholder, User
from rfi_api.models.enums import PrincipalType, StakeholderRole, UserRole
from rfi_api.services.credentials import burn_verification, verify_password
from rfi_api.services.soft_delete import apply_visibility, visibility_filter

logger = logging.getLogger(__name__)


def normalize_email(value: str) -> str:
    """标准化邮箱字段（去空格 + 小写）。"""
    return value.strip().lower()


def email_domain(value: str) -> str:
    """提取邮箱域名（小写），无 @ 时返回空串。"""
    normalized = normalize_email(value)
    if "@" not in normalized:
        return ""
    return normalized.rsplit("@", 1)[1]


@dataclass(frozen=True)
class InternalPrincipal:
    """内部员工主体，可访问全部项目。"""

    id: UUID
    email: str
    role: str
    display_name: str
    principal_type: str = PrincipalType.INTERNAL
    client_id: UUID | None = None
    project_access: frozenset[UUID] = field(default_factory=frozenset)

    @property
    def is_internal(self) -> bool:
        return True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class StakeholderPrincipal:
    """外部干系人主体，仅可访问被授权项目。"""

    id: UUID
    email: str
    role: str
    display_name: str
    client_id: UUID
    project_access: frozenset[UUID] = field(default_factory=frozenset)
    principal_type: str = PrincipalType.STAKEHOLDER

    @property
    def is_internal(self) -> bool:
        return False

    @property
    def is_admin(self) -> bool:
        return False


Principal = InternalPrincipal | StakeholderPrincipal


def project_access_for_contact(db: Session, contact_id: UUID) -> frozenset[UUID]:
    """计算联系人在未删除项目上的授权集合。"""
    stmt = (
        select(ProjectStakeholder.project_id)
        .join(Project, Project.id == ProjectStakeholder.project_id)
        .where(ProjectStakeholder.contact_id == contact_id)
        .where(visibility_filter(Project))
    )
    return frozenset(db.execute(stmt).scalars().all())


def internal_principal(user: User) -> InternalPrincipal:
    return InternalPrincipal(
        id=user.id,
        email=user.email,
        role=user.role,
        display_name=user.display_name,
    )


def stakeholder_principal(db: Session, contact: Contact) -> StakeholderPrincipal:
    return StakeholderPrincipal(
        id=contact.id,
        email=contact.email,
        role=contact.role or StakeholderRole.L1,
        display_name=contact.name,
        client_id=contact.client_id,
        project_access=project_access_for_contact(db, contact.id),
    )


def _find_user(db: Session, email: str) -> User | None:
    stmt = apply_visibility(select(User).where(func.lower(User.email) == email), User)
    return db.execute(stmt).scalars().first()


def _registered_contacts(db: Session, email: str) -> list[Contact]:
    """查找已完成注册（口令非空）的未删除联系人。"""
    stmt = apply_visibility(
        select(Contact)
        .where(func.lower(Contact.email) == email)
        .where(Contact.password_hash.is_not(None))
        .order_by(Contact.created_at.asc(), Contact.id.asc()),
        Contact,
    )
    return list(db.execute(stmt).scalars().all())


def resolve_principal(db: Session, email: str, password: str) -> Principal:
    """按邮箱与口令解析认证主体。

    规则:
    1. 命中未删除员工：口令正确且启用则返回员工主体，否则失败（不回退到联系人）。
    2. 否则在已注册联系人中校验口令。
    3. 失败统一抛出 `InvalidCredentials`，不区分失败原因。
    """
    normalized = normalize_email(email)
    now = datetime.now(timezone.utc)

    user = _find_user(db, normalized)
    if user is not None:
        if verify_password(password, user.password_hash) and user.active:
            user.last_login_at = now
            db.flush()
            return internal_principal(user)
        logger.info("login rejected principal=internal")
        raise InvalidCredentials()

    contacts = _registered_contacts(db, normalized)
    if not contacts:
        burn_verification(password)
        logger.info("login rejected principal=unknown")
        raise InvalidCredentials()

    for contact in contacts:
        if verify_password(password, contact.password_hash):
            contact.last_login_at = now
            db.flush()
            return stakeholder_principal(db, contact)

    logger.info("login rejected principal=stakeholder")
    raise InvalidCredentials()


def _parse_subject(subject: str) -> UUID:
    try:
        return UUID(subject)
    except ValueError as exc:
        raise UNAUTHORIZED from exc


def load_principal(db: Session, claims: TokenClaims) -> Principal:
    """按令牌声明重新加载主体。

    角色、启用状态与项目授权均以数据库为准，令牌中的快照不参与授权判断。
    """
    subject_id = _parse_subject(claims.subject)

    if claims.user_type == PrincipalType.INTERNAL:
        stmt = apply_visibility(select(User).where(User.id == subject_id), User)
        user = db.execute(stmt).scalar_one_or_none()
        if user is None or not user.active:
            raise UNAUTHORIZED
        return internal_principal(user)

    if claims.user_type == PrincipalType.STAKEHOLDER:
        stmt = apply_visibility(
            select(Contact).where(Contact.id == subject_id).where(Contact.password_hash.is_not(None)),
            Contact,
        )
        contact = db.execute(stmt).scalar_one_or_none()
        if contact is None:
            raise UNAUTHORIZED
        return stakeholder_principal(db, contact)

    raise UNAUTHORIZED
