"""注册令牌签发与兑换服务。

约束:
1. 每个联系人最多保留一个未使用令牌，签发新令牌前删除旧的未使用令牌。
2. 令牌只能兑换一次，`used_at` 以条件更新（used_at IS NULL）方式写入。
3. 过期令牌即使未使用也不可兑换。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Iterable
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from rfi_api.core.config import get_settings
from rfi_api.exceptions import EmailMismatch, NotFound, TokenAlreadyUsed, TokenExpired, TokenNotFound
from rfi_api.models import Contact, RegistrationToken
from rfi_api.models.enums import RegistrationTokenType, StakeholderRole
from rfi_api.services.credentials import hash_password
from rfi_api.services.principals import normalize_email
from rfi_api.services.soft_delete import get_visible
from rfi_api.utils.response import as_utc

logger = logging.getLogger(__name__)


@dataclass
class RegistrationTokenView:
    """注册页展示用的令牌信息，不消耗令牌。"""

    email: str
    contact_id: UUID
    contact_name: str
    project_ids: list[str]
    token_type: str
    expires_at: datetime


@dataclass
class RegistrationStatus:
    """联系人注册状态。"""

    contact_id: UUID
    is_registered: bool
    is_eligible: bool
    has_valid_token: bool
    latest_token: RegistrationToken | None


def generate_token_value() -> str:
    """生成 32 字节随机十六进制令牌。"""
    return secrets.token_hex(32)


def registration_url(token: str) -> str:
    """拼接前端注册链接。"""
    base_url = get_settings().app_public_url.rstrip("/")
    return f"{base_url}/register?token={token}"


def login_url() -> str:
    return f"{get_settings().app_public_url.rstrip('/')}/login"


def invalidate_unused_tokens(db: Session, contact_id: UUID) -> int:
    """删除联系人的全部未使用令牌，返回删除数量。"""
    result = db.execute(
        delete(RegistrationToken)
        .where(RegistrationToken.contact_id == contact_id)
        .where(RegistrationToken.used_at.is_(None))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def issue_registration_token(
    db: Session,
    *,
    contact_id: UUID,
    email: str,
    project_ids: Iterable[UUID | str],
    token_type: str = RegistrationTokenType.AUTO_APPROVED,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> RegistrationToken:
    """签发注册令牌，先使该联系人的旧未使用令牌失效。"""
    issued_at = now or datetime.now(timezone.utc)
    lifetime = ttl or timedelta(days=get_settings().registration_token_ttl_days)

    superseded = invalidate_unused_tokens(db, contact_id)
    row = RegistrationToken(
        token=generate_token_value(),
        email=normalize_email(email),
        contact_id=contact_id,
        project_ids=[str(item) for item in project_ids],
        token_type=token_type,
        expires_at=issued_at + lifetime,
    )
    db.add(row)
    db.flush()
    logger.info(
        "registration token issued contact_id=%s type=%s superseded=%s",
        contact_id,
        token_type,
        superseded,
    )
    return row


def _load_usable_token(db: Session, token: str, now: datetime) -> RegistrationToken:
    row = db.execute(select(RegistrationToken).where(RegistrationToken.token == token)).scalar_one_or_none()
    if row is None:
        raise TokenNotFound()
    if as_utc(row.expires_at) < now:
        raise TokenExpired()
    if row.used_at is not None:
        raise TokenAlreadyUsed()
    return row


def describe_registration_token(db: Session, token: str) -> RegistrationTokenView:
    """校验令牌并返回注册页所需信息，不消耗令牌。"""
    now = datetime.now(timezone.utc)
    row = _load_usable_token(db, token, now)
    contact = get_visible(db, Contact, row.contact_id)
    if contact is None:
        raise TokenNotFound()
    return RegistrationTokenView(
        email=row.email,
        contact_id=contact.id,
        contact_name=contact.name,
        project_ids=list(row.project_ids or []),
        token_type=row.token_type,
        expires_at=as_utc(row.expires_at),
    )


def redeem_registration_token(
    db: Session,
    *,
    token: str,
    email: str,
    password: str,
    name: str | None = None,
    now: datetime | None = None,
) -> Contact:
    """兑换注册令牌并激活联系人账号。

    `used_at` 写入与联系人激活处于同一事务，条件更新未命中时视为令牌已被使用。
    """
    redeemed_at = now or datetime.now(timezone.utc)
    row = _load_usable_token(db, token, redeemed_at)
    if normalize_email(email) != normalize_email(row.email):
        raise EmailMismatch()

    contact = get_visible(db, Contact, row.contact_id)
    if contact is None:
        raise TokenNotFound()

    result = db.execute(
        update(RegistrationToken)
        .where(RegistrationToken.id == row.id)
        .where(RegistrationToken.used_at.is_(None))
        .values(used_at=redeemed_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TokenAlreadyUsed()
    db.refresh(row, ["used_at"])

    contact.password_hash = hash_password(password)
    contact.email_verified = True
    contact.registration_eligible = True
    if not contact.role:
        contact.role = StakeholderRole.L1
    if name and name.strip():
        contact.name = name.strip()
    db.flush()
    logger.info("registration token redeemed contact_id=%s type=%s", contact.id, row.token_type)
    return contact


def get_registration_status(db: Session, contact_id: UUID) -> RegistrationStatus:
    """查询联系人注册状态与最近一次令牌。"""
    contact = get_visible(db, Contact, contact_id)
    if contact is None:
        raise NotFound("联系人不存在。")

    now = datetime.now(timezone.utc)
    tokens = (
        db.execute(
            select(RegistrationToken)
            .where(RegistrationToken.contact_id == contact_id)
            .order_by(RegistrationToken.created_at.desc(), RegistrationToken.expires_at.desc())
        )
        .scalars()
        .all()
    )
    has_valid_token = any(item.used_at is None and as_utc(item.expires_at) >= now for item in tokens)
    return RegistrationStatus(
        contact_id=contact.id,
        is_registered=contact.password_hash is not None,
        is_eligible=contact.registration_eligible,
        has_valid_token=has_valid_token,
        latest_token=tokens[0] if tokens else None,
    )


def cleanup_expired_tokens(
    db: Session,
    *,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> int:
    """删除过期超过保留期的令牌，返回删除数量。"""
    days = get_settings().registration_token_retention_days if retention_days is None else retention_days
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    result = db.execute(
        delete(RegistrationToken)
        .where(RegistrationToken.expires_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    logger.info("registration token cleanup cutoff=%s deleted=%s", cutoff.isoformat(), deleted)
    return deleted
