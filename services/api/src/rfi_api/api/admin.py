"""运维与账号管理接口（管理员）。

包括软删除一致性修复、过期注册令牌清理、干系人账号停用/启用。
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import require_admin
from rfi_api.models import Contact, User
from rfi_api.schemas.admin import (
    SoftDeleteRepairData,
    StakeholderAccountData,
    StakeholderActivateRequest,
    TokenCleanupData,
    TokenCleanupRequest,
)
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services import (
    Principal,
    activate_stakeholder_account,
    audit_log,
    cleanup_expired_tokens,
    deactivate_stakeholder_account,
    repair_inconsistent_deletes,
)
from rfi_api.utils.response import success

router = APIRouter(prefix="/admin", tags=["admin"])

# 同时带 active 与 deleted_at 字段、需要修复的表。
_REPAIRABLE_MODELS = (Contact, User)


@router.post(
    "/soft-delete/repair",
    summary="修复软删除不一致",
    description="为 active=false 但未写删除时间的联系人与员工回填 deleted_at，可重复执行。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SoftDeleteRepairData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def repair_soft_deletes(
    request: Request,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """软删除一致性修复。"""
    reports = [repair_inconsistent_deletes(db, model) for model in _REPAIRABLE_MODELS]
    audit_log(
        db,
        request,
        admin,
        action="maintenance.soft_delete_repair",
        resource_type="maintenance",
        resource_id="soft_delete",
        after_json={item.model: item.fixed_count for item in reports},
    )
    db.commit()
    return success(
        request,
        {
            "reports": [
                {
                    "model": item.model,
                    "fixed_count": item.fixed_count,
                    "fixed_ids": item.fixed_ids,
                    "remaining": item.remaining,
                }
                for item in reports
            ]
        },
    )


@router.post(
    "/registration-tokens/cleanup",
    summary="清理过期注册令牌",
    description="删除过期超过保留天数的注册令牌。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TokenCleanupData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def cleanup_registration_tokens(
    request: Request,
    payload: TokenCleanupRequest | None = None,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    deleted = cleanup_expired_tokens(db, retention_days=payload.retention_days if payload else None)
    audit_log(
        db,
        request,
        admin,
        action="maintenance.registration_token_cleanup",
        resource_type="maintenance",
        resource_id="registration_tokens",
        after_json={"deleted": deleted},
    )
    db.commit()
    return success(request, {"deleted": deleted})


@router.post(
    "/stakeholders/{contact_id}/deactivate",
    summary="停用干系人账号",
    description="清空口令与注册资格并删除未使用的注册令牌，项目授权保留。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[StakeholderAccountData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def deactivate_stakeholder(
    request: Request,
    contact_id: UUID = Path(..., description="联系人 ID。"),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """停用干系人账号。"""
    contact = deactivate_stakeholder_account(db, contact_id)
    audit_log(
        db,
        request,
        admin,
        action="contact.deactivate",
        resource_type="contact",
        resource_id=str(contact_id),
        before_json={"is_active": True},
        after_json={"is_active": False},
    )
    db.commit()
    return success(request, {"contact_id": contact.id, "email": contact.email, "is_active": False})


@router.post(
    "/stakeholders/{contact_id}/activate",
    summary="启用干系人账号",
    description="为已停用的干系人设置口令；未指定口令时生成临时口令并仅在本次响应中返回。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[StakeholderAccountData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def activate_stakeholder(
    request: Request,
    contact_id: UUID = Path(..., description="联系人 ID。"),
    payload: StakeholderActivateRequest | None = None,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """启用干系人账号。"""
    outcome = activate_stakeholder_account(db, contact_id, password=payload.password if payload else None)
    audit_log(
        db,
        request,
        admin,
        action="contact.activate",
        resource_type="contact",
        resource_id=str(contact_id),
        before_json={"is_active": False},
        after_json={"is_active": True, "generated_password": outcome.temporary_password is not None},
    )
    db.commit()
    return success(
        request,
        {
            "contact_id": outcome.contact.id,
            "email": outcome.contact.email,
            "is_active": True,
            "temporary_password": outcome.temporary_password,
        },
    )
