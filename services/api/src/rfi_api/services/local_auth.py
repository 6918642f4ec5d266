"""本地登录令牌签发服务。"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from rfi_api.core.config import get_settings
from rfi_api.core.security import encode_claims
from rfi_api.services.permissions import can_invite
from rfi_api.services.principals import Principal


def issue_access_token(principal: Principal) -> tuple[str, int, datetime]:
    """签发访问令牌。

    声明中的项目授权仅为签发时快照，服务端每次请求都会重新加载。
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=settings.auth_access_token_ttl_seconds)
    issuer = settings.auth_jwt_issuer or settings.auth_local_issuer

    claims: dict[str, object] = {
        "sub": str(principal.id),
        "email": principal.email,
        "name": principal.display_name,
        "role": principal.role,
        "user_type": principal.principal_type,
        "can_invite": can_invite(principal),
        "iss": issuer,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": str(uuid4()),
    }
    if not principal.is_internal:
        claims["project_access"] = sorted(str(project_id) for project_id in principal.project_access)
        claims["client_id"] = str(principal.client_id)
    if settings.auth_jwt_audience:
        claims["aud"] = settings.auth_jwt_audience

    token = encode_claims(claims)
    return token, int(expires_at.timestamp()), expires_at
