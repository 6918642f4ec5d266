"""请求上下文依赖。

职责:
1. 解析并校验访问令牌。
2. 按令牌声明从数据库重新加载认证主体（员工或干系人）。
3. 提供管理员/内部员工等路由级限制。
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from rfi_api.core.security import TokenClaims, parse_authorization_header
from rfi_api.db.session import get_db
from rfi_api.services.notifications import EmailDispatcher
from rfi_api.services.permissions import ensure_admin, ensure_internal
from rfi_api.services.principals import Principal, load_principal

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenClaims:
    """提取并校验当前请求令牌声明。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def get_current_principal(
    claims: TokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> Principal:
    """返回当前认证主体，停用/删除/被清空口令的账号立即失效。"""
    return load_principal(db, claims)


def require_internal(principal: Principal = Depends(get_current_principal)) -> Principal:
    """仅内部员工可访问。"""
    ensure_internal(principal)
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """仅管理员可访问。"""
    ensure_admin(principal)
    return principal


def get_email_dispatcher() -> EmailDispatcher:
    """提交后邮件投递器，测试中可覆盖。"""
    return EmailDispatcher()


def get_optional_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Principal | None:
    """公开接口使用：未携带令牌时返回 None，携带时按正常流程校验。"""
    if credentials is None or not credentials.credentials:
        return None
    claims = parse_authorization_header(f"{credentials.scheme} {credentials.credentials}")
    return load_principal(db, claims)
