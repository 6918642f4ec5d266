"""访问令牌签发、校验与吊销工具。"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
import logging
import re
from threading import Lock
from typing import Any

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError, PyJWKClient
from redis import Redis
from redis.exceptions import RedisError

from rfi_api.core.config import get_settings

logger = logging.getLogger(__name__)

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)
TOKEN_PLACEHOLDER_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={
        "code": "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED",
        "message": "认证失败：Authorization 仍为变量占位符，未替换为真实访问令牌。",
        "details": {
            "reason": "authorization_placeholder_not_resolved",
            "suggestion": "请先调用登录接口获取 access_token，再在请求头中传入 Bearer 真实令牌。",
        },
    },
)

_LOCAL_BLACKLIST: dict[str, int] = {}
_LOCAL_LOCK = Lock()
_redis_client: Redis | None = None


@dataclass
class TokenClaims:
    """已校验的令牌声明。

    声明只用于定位主体，角色与项目授权在每次请求时按数据库重新加载。
    """

    # 主体 ID（sub）。
    subject: str
    # 主体类型（internal/stakeholder）。
    user_type: str
    email: str | None
    role: str | None
    # 签发时的项目授权快照，仅供前端展示。
    project_access: list[str] = field(default_factory=list)
    jti: str | None = None
    exp: int | None = None
    # 原始声明集。
    claims: dict[str, Any] = field(default_factory=dict)


@lru_cache
def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    """缓存密钥集合客户端，减少重复网络开销。"""
    return PyJWKClient(jwks_url)


def _decode_jwt(token: str) -> dict[str, Any]:
    """按配置解码并校验令牌。"""
    settings = get_settings()
    algorithms = settings.auth_algorithms
    options = {"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience)}
    issuer = settings.auth_jwt_issuer or settings.auth_local_issuer

    try:
        if settings.auth_jwks_url:
            key = _get_jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token).key
        else:
            # 未配置 JWKS 时使用对称密钥（本地签发）。
            key = settings.auth_jwt_secret
        return jwt.decode(
            token,
            key=key,
            algorithms=algorithms,
            issuer=issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options=options,
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc


def encode_claims(claims: dict[str, Any]) -> str:
    """使用本地密钥签名声明。"""
    settings = get_settings()
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_algorithms[0])


def _cleanup_local(now_ts: int) -> None:
    expired_keys = [key for key, expires_at in _LOCAL_BLACKLIST.items() if expires_at <= now_ts]
    for key in expired_keys:
        _LOCAL_BLACKLIST.pop(key, None)


def _get_redis() -> Redis | None:
    global _redis_client
    settings = get_settings()
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def _key_for_jti(jti: str) -> str:
    settings = get_settings()
    return f"{settings.auth_token_blacklist_prefix}{jti}"


def revoke_token_jti(jti: str, exp_ts: int) -> None:
    """将 token jti 拉黑到令牌过期时间。"""
    now_ts = int(datetime.now(timezone.utc).timestamp())
    ttl = max(1, exp_ts - now_ts)
    redis_client = _get_redis()
    if redis_client is not None:
        try:
            redis_client.setex(_key_for_jti(jti), ttl, "1")
            return
        except RedisError as exc:
            # Redis 不可用时回退到本地缓存。
            logger.warning("redis revoke failed, using local blacklist: %s", exc)

    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        _LOCAL_BLACKLIST[jti] = exp_ts


def is_token_jti_revoked(jti: str) -> bool:
    """判断 token jti 是否已被拉黑。"""
    redis_client = _get_redis()
    if redis_client is not None:
        try:
            return bool(redis_client.exists(_key_for_jti(jti)))
        except RedisError as exc:
            logger.warning("redis lookup failed, using local blacklist: %s", exc)

    now_ts = int(datetime.now(timezone.utc).timestamp())
    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        expires_at = _LOCAL_BLACKLIST.get(jti)
        return expires_at is not None and expires_at > now_ts


def _is_placeholder_token(token: str) -> bool:
    return ("{{" in token and "}}" in token) or ("${" in token and "}" in token)


def _extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise UNAUTHORIZED
    tokens = re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)
    if not tokens:
        raise UNAUTHORIZED
    placeholder_seen = False
    for candidate in reversed(tokens):
        token = candidate.strip()
        if not token:
            continue
        if _is_placeholder_token(token):
            placeholder_seen = True
            continue
        return token
    if placeholder_seen:
        raise TOKEN_PLACEHOLDER_UNAUTHORIZED
    raise UNAUTHORIZED


def parse_authorization_header(authorization: str | None) -> TokenClaims:
    """解析认证头并返回已校验的令牌声明。"""
    token = _extract_bearer_token(authorization)
    claims = _decode_jwt(token)

    jti = claims.get("jti")
    if isinstance(jti, str) and jti and is_token_jti_revoked(jti):
        raise UNAUTHORIZED

    subject = str(claims.get("sub") or "").strip()
    user_type = claims.get("user_type")
    if not subject or not isinstance(user_type, str):
        raise UNAUTHORIZED

    email = claims.get("email")
    role = claims.get("role")
    project_access = claims.get("project_access")
    exp = claims.get("exp")
    return TokenClaims(
        subject=subject,
        user_type=user_type,
        email=email if isinstance(email, str) else None,
        role=role if isinstance(role, str) else None,
        project_access=[str(item) for item in project_access] if isinstance(project_access, list) else [],
        jti=jti if isinstance(jti, str) and jti else None,
        exp=exp if isinstance(exp, int) else None,
        claims=claims,
    )
