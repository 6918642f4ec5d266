"""认证与注册接口。"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.orm import Session

from rfi_api.core.security import parse_authorization_header, revoke_token_jti
from rfi_api.db.session import get_db
from rfi_api.dependencies import get_current_principal
from rfi_api.schemas.auth import (
    AuthLoginData,
    AuthLoginRequest,
    AuthLogoutData,
    AuthRegisterRequest,
    PrincipalData,
    RegistrationTokenData,
)
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services.audit import audit_log
from rfi_api.services.local_auth import issue_access_token
from rfi_api.services.permissions import can_invite
from rfi_api.services.principals import Principal, resolve_principal, stakeholder_principal
from rfi_api.services.registration import describe_registration_token, redeem_registration_token
from rfi_api.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])


def principal_view(principal: Principal) -> dict:
    """构造主体统一视图。"""
    return {
        "id": principal.id,
        "email": principal.email,
        "display_name": principal.display_name,
        "role": principal.role,
        "user_type": principal.principal_type,
        "client_id": principal.client_id,
        "project_access": sorted(principal.project_access, key=str),
        "can_invite": can_invite(principal),
        "is_admin": principal.is_admin,
    }


def _login_payload(principal: Principal) -> dict:
    token, exp_ts, expires_at = issue_access_token(principal)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": expires_at,
        "expires_in": max(0, exp_ts - int(datetime.now(timezone.utc).timestamp())),
        "principal": principal_view(principal),
    }


@router.post(
    "/login",
    summary="登录",
    description="内部员工与外部干系人共用的邮箱密码登录，先匹配员工，后匹配已注册联系人。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLoginData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def login(
    payload: AuthLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """登录并签发访问令牌。"""
    principal = resolve_principal(db, payload.email, payload.password)
    data = _login_payload(principal)
    db.commit()
    return success(request, data)


@router.post(
    "/logout",
    summary="登出",
    description="将当前访问令牌加入黑名单（优先 Redis），已登出的 token 立即失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLogoutData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def logout(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
):
    """登出并拉黑当前访问令牌。"""
    claims = parse_authorization_header(authorization)
    revoked = False
    if claims.jti and claims.exp:
        revoke_token_jti(claims.jti, claims.exp)
        revoked = True

    return success(request, {"logged_out": True, "revoked": revoked})


@router.get(
    "/me",
    summary="获取当前身份",
    description="返回当前主体视图，角色与项目授权按数据库实时计算。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PrincipalData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def me(
    request: Request,
    principal: Principal = Depends(get_current_principal),
):
    """查询当前认证主体。"""
    return success(request, principal_view(principal))


@router.get(
    "/registration/{token}",
    summary="校验注册令牌",
    description="注册页加载时校验令牌并返回绑定邮箱，不消耗令牌。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RegistrationTokenData],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def get_registration_token(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """查询注册令牌信息。"""
    view = describe_registration_token(db, token)
    return success(
        request,
        {
            "email": view.email,
            "contact_id": view.contact_id,
            "contact_name": view.contact_name,
            "project_ids": view.project_ids,
            "token_type": view.token_type,
            "expires_at": view.expires_at,
        },
    )


@router.post(
    "/register",
    summary="干系人注册",
    description="凭一次性注册令牌设置口令并激活干系人账号，成功后直接返回访问令牌。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AuthLoginData],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def register(
    payload: AuthRegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """兑换注册令牌。"""
    contact = redeem_registration_token(
        db,
        token=payload.token,
        email=payload.email,
        password=payload.password,
        name=payload.name,
    )
    principal = stakeholder_principal(db, contact)
    audit_log(
        db,
        request,
        principal,
        action="contact.register",
        resource_type="contact",
        resource_id=str(contact.id),
        after_json={"email": contact.email, "role": contact.role},
    )
    data = _login_payload(principal)
    db.commit()
    return success(request, data)
