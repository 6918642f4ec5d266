"""项目访问申请接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import get_email_dispatcher, get_optional_principal, require_admin
from rfi_api.exceptions import Forbidden
from rfi_api.models import AccessRequest
from rfi_api.schemas.access_request import (
    AccessRequestCreateRequest,
    AccessRequestDecisionData,
    AccessRequestDecisionRequest,
    AccessRequestListItemData,
    AccessRequestSubmitData,
)
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services import (
    AccessRequestOutcome,
    EmailDispatcher,
    Principal,
    audit_log,
    dispatch_effects,
    list_access_requests,
    process_access_request,
    submit_access_request,
)
from rfi_api.utils.response import success

router = APIRouter(prefix="/access-requests", tags=["access-requests"])


def request_view(item: AccessRequest) -> dict:
    """访问申请序列化。"""
    return {
        "id": item.id,
        "contact_id": item.contact_id,
        "project_id": item.project_id,
        "requested_role": item.requested_role,
        "justification": item.justification,
        "auto_approval_reason": item.auto_approval_reason,
        "status": item.status,
        "processed_at": item.processed_at,
        "processed_by_id": item.processed_by_id,
        "created_at": item.created_at,
    }


def submit_view(outcome: AccessRequestOutcome) -> dict:
    return {
        "request": request_view(outcome.request),
        "auto_approved": outcome.auto_approved,
        "grant_id": outcome.grant.id if outcome.grant else None,
    }


@router.post(
    "",
    summary="提交访问申请",
    description="已有联系人申请访问项目，无需登录；邮箱域与项目现有干系人一致时直接通过。携带干系人令牌时只能为本人提交。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AccessRequestSubmitData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def create_access_request(
    payload: AccessRequestCreateRequest,
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
):
    """提交访问申请。"""
    if principal is not None and not principal.is_internal and payload.contact_id != principal.id:
        raise Forbidden()

    outcome = submit_access_request(
        db,
        contact_id=payload.contact_id,
        project_id=payload.project_id,
        requested_role=payload.requested_role,
        justification=payload.justification,
    )
    audit_log(
        db,
        request,
        principal,
        action="access_request.submit",
        resource_type="access_request",
        resource_id=str(outcome.request.id),
        after_json={"status": outcome.request.status, "project_id": str(payload.project_id)},
    )
    db.commit()
    dispatch_effects(outcome.effects, dispatcher)
    return success(request, submit_view(outcome))


@router.get(
    "",
    summary="查询访问申请",
    description="管理员查看访问申请，待审核优先，其余按创建时间倒序。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[AccessRequestListItemData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def get_access_requests(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status", description="按状态过滤。"),
    _: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """管理员访问申请列表。"""
    items = list_access_requests(db, status=status_filter)
    data = []
    for item in items:
        row = request_view(item.request)
        row.update(
            {
                "contact_name": item.contact.name if item.contact else None,
                "contact_email": item.contact.email if item.contact else None,
                "project_name": item.project.name if item.project else None,
                "currently_has_access": item.currently_has_access,
            }
        )
        data.append(row)
    return success(request, data)


@router.patch(
    "/{request_id}",
    summary="审批访问申请",
    description="管理员通过或拒绝待审核申请；通过时重置联系人注册状态并发送注册邮件。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessRequestDecisionData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def decide_access_request(
    payload: AccessRequestDecisionRequest,
    request: Request,
    request_id: UUID = Path(..., description="访问申请 ID。"),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
):
    """审批访问申请。"""
    outcome = process_access_request(db, request_id=request_id, decision=payload.status, acting=admin)
    audit_log(
        db,
        request,
        admin,
        action=f"access_request.{payload.status}",
        resource_type="access_request",
        resource_id=str(request_id),
        before_json={"status": "pending"},
        after_json={"status": outcome.request.status},
    )
    db.commit()

    results = dispatch_effects(outcome.effects, dispatcher)
    return success(
        request,
        {
            "request": request_view(outcome.request),
            "grant_id": outcome.grant.id if outcome.grant else None,
            "email_delivered": all(item.success for item in results) if results else None,
        },
    )
