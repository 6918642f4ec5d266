"""审计服务。

审计记录与业务变更在同一事务内写入，由路由层统一提交；
事务回滚时审计记录一并丢弃，不会留下未生效操作的痕迹。
"""

from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from rfi_api.models.audit import AuditLog
from rfi_api.models.enums import AuditActorType
from rfi_api.services.principals import Principal


def _client_ip(request: Request) -> str | None:
    # 网关透传的第一跳即客户端地址。
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _actor_type(actor: Principal | None) -> str:
    if actor is None:
        return AuditActorType.ANONYMOUS
    if actor.is_internal:
        return AuditActorType.USER
    return AuditActorType.CONTACT


def audit_log(
    db: Session,
    request: Request,
    actor: Principal | None,
    action: str,
    resource_type: str,
    resource_id: str,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
) -> AuditLog:
    """追加一条审计记录（只 add，不 flush）。"""
    entry = AuditLog(
        actor_type=_actor_type(actor),
        actor_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        before_json=before_json,
        after_json=after_json,
        request_id=getattr(request.state, "request_id", None),
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.add(entry)
    return entry
