"""客户管理接口（管理员）。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import require_admin
from rfi_api.schemas.admin import DeletedEntityData
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services import Principal, audit_log, soft_delete_client
from rfi_api.utils.response import as_utc, success

router = APIRouter(prefix="/clients", tags=["clients"])


@router.delete(
    "/{client_id}",
    summary="删除客户",
    description="软删除客户；仍有未删除的项目或联系人时返回 409 并附带各类依赖数量。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DeletedEntityData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def delete_client(
    request: Request,
    client_id: UUID = Path(..., description="客户 ID。"),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """删除客户。"""
    client = soft_delete_client(db, client_id)
    audit_log(
        db,
        request,
        admin,
        action="client.delete",
        resource_type="client",
        resource_id=str(client_id),
        before_json={"is_deleted": False},
        after_json={"is_deleted": True},
    )
    db.commit()
    return success(request, {"id": client.id, "deleted": True, "deleted_at": as_utc(client.deleted_at)})
