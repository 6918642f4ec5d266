"""免登录公开接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from rfi_api.api.access_requests import submit_view
from rfi_api.db.session import get_db
from rfi_api.dependencies import get_email_dispatcher
from rfi_api.schemas.access_request import AccessRequestSubmitData, PublicAccessRequestCreateRequest
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.services import EmailDispatcher, audit_log, dispatch_effects, submit_public_access_request
from rfi_api.utils.response import success

router = APIRouter(prefix="/public", tags=["public"])


@router.post(
    "/access-requests",
    summary="公开提交访问申请",
    description="未注册人员按项目编号或名称申请访问，联系人不存在时在项目所属客户下新建。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AccessRequestSubmitData],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def create_public_access_request(
    payload: PublicAccessRequestCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
):
    outcome = submit_public_access_request(
        db,
        name=payload.name,
        email=payload.email,
        project_reference=payload.project_number,
        justification=payload.reason,
    )
    audit_log(
        db,
        request,
        None,
        action="access_request.public_submit",
        resource_type="access_request",
        resource_id=str(outcome.request.id),
        after_json={"status": outcome.request.status, "email": payload.email.strip().lower()},
    )
    db.commit()
    dispatch_effects(outcome.effects, dispatcher)
    return success(request, submit_view(outcome))
