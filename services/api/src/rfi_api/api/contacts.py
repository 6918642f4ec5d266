"""联系人接口（内部员工）。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import require_internal
from rfi_api.schemas.admin import DeletedEntityData, RegistrationStatusData
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services import Principal, audit_log, get_registration_status, soft_delete_contact
from rfi_api.utils.response import as_utc, success

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get(
    "/{contact_id}/registration",
    summary="查询联系人注册状态",
    description="返回联系人是否已注册、是否具备注册资格以及最近一次注册令牌状态。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RegistrationStatusData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def contact_registration_status(
    request: Request,
    contact_id: UUID = Path(..., description="联系人 ID。"),
    _: Principal = Depends(require_internal),
    db: Session = Depends(get_db),
):
    """联系人注册状态。"""
    result = get_registration_status(db, contact_id)
    latest = result.latest_token
    return success(
        request,
        {
            "contact_id": result.contact_id,
            "is_registered": result.is_registered,
            "is_eligible": result.is_eligible,
            "has_valid_token": result.has_valid_token,
            "latest_token_type": latest.token_type if latest else None,
            "latest_token_expires_at": as_utc(latest.expires_at) if latest else None,
            "latest_token_used_at": as_utc(latest.used_at) if latest and latest.used_at else None,
        },
    )


@router.delete(
    "/{contact_id}",
    summary="删除联系人",
    description="软删除联系人，删除后不可登录、不再出现在列表与权限计算中。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DeletedEntityData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def delete_contact(
    request: Request,
    contact_id: UUID = Path(..., description="联系人 ID。"),
    principal: Principal = Depends(require_internal),
    db: Session = Depends(get_db),
):
    contact = soft_delete_contact(db, contact_id)
    audit_log(
        db,
        request,
        principal,
        action="contact.delete",
        resource_type="contact",
        resource_id=str(contact_id),
        before_json={"is_deleted": False},
        after_json={"is_deleted": True},
    )
    db.commit()
    return success(request, {"id": contact.id, "deleted": True, "deleted_at": as_utc(contact.deleted_at)})
