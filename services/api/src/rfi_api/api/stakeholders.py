"""项目干系人管理接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import get_current_principal, get_email_dispatcher
from rfi_api.models import Contact, ProjectStakeholder
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.schemas.stakeholder import (
    InvitationCreateRequest,
    InvitationData,
    StakeholderAddRequest,
    StakeholderData,
    StakeholderRemoveData,
)
from rfi_api.services import (
    EmailDispatcher,
    Principal,
    add_stakeholder,
    audit_log,
    dispatch_effects,
    invite_stakeholder,
    list_project_stakeholders,
    remove_stakeholder,
)
from rfi_api.services.permissions import ensure_project_access
from rfi_api.utils.response import success

router = APIRouter(prefix="/projects", tags=["stakeholders"])


def _stakeholder_view(grant: ProjectStakeholder, contact: Contact | None) -> dict:
    return {
        "id": grant.id,
        "project_id": grant.project_id,
        "contact_id": grant.contact_id,
        "contact_name": contact.name if contact else None,
        "contact_email": contact.email if contact else None,
        "stakeholder_level": grant.stakeholder_level,
        "auto_approved": grant.auto_approved,
        "added_by_user_id": grant.added_by_user_id,
        "added_by_contact_id": grant.added_by_contact_id,
        "created_at": grant.created_at,
    }


@router.get(
    "/{project_id}/stakeholders",
    summary="查询项目干系人",
    description="按调用方可见范围返回项目干系人；二级干系人仅能看到自己与邀请人。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[StakeholderData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def get_project_stakeholders(
    request: Request,
    project_id: UUID = Path(..., description="项目 ID。"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """项目干系人列表。"""
    ensure_project_access(principal, project_id)
    rows = list_project_stakeholders(db, principal, project_id)
    return success(request, [_stakeholder_view(grant, contact) for grant, contact in rows])


@router.post(
    "/{project_id}/stakeholders",
    summary="添加项目干系人",
    description="内部员工可添加任意级别；一级干系人只能为本客户联系人添加二级授权。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[StakeholderData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def create_project_stakeholder(
    payload: StakeholderAddRequest,
    request: Request,
    project_id: UUID = Path(..., description="项目 ID。"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """添加项目干系人。"""
    grant = add_stakeholder(
        db,
        project_id=project_id,
        contact_id=payload.contact_id,
        actor=principal,
        level=payload.stakeholder_level,
    )
    audit_log(
        db,
        request,
        principal,
        action="project.stakeholder.add",
        resource_type="project_stakeholder",
        resource_id=str(grant.id),
        after_json={"contact_id": str(grant.contact_id), "stakeholder_level": grant.stakeholder_level},
    )
    db.commit()
    return success(request, _stakeholder_view(grant, db.get(Contact, grant.contact_id)))


@router.delete(
    "/{project_id}/stakeholders/{contact_id}",
    summary="移除项目干系人",
    description="移除授权；联系人失去全部项目授权时口令与注册资格一并清空。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[StakeholderRemoveData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def delete_project_stakeholder(
    request: Request,
    project_id: UUID = Path(..., description="项目 ID。"),
    contact_id: UUID = Path(..., description="联系人 ID。"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """移除项目干系人。"""
    outcome = remove_stakeholder(db, project_id=project_id, contact_id=contact_id, actor=principal)
    audit_log(
        db,
        request,
        principal,
        action="project.stakeholder.remove",
        resource_type="project_stakeholder",
        resource_id=f"{project_id}:{contact_id}",
        after_json={"contact_reset": outcome.contact_reset, "remaining_grants": outcome.remaining_grants},
    )
    db.commit()
    return success(
        request,
        {
            "project_id": project_id,
            "contact_id": contact_id,
            "removed": True,
            "contact_reset": outcome.contact_reset,
            "remaining_grants": outcome.remaining_grants,
        },
    )


@router.post(
    "/{project_id}/invitations",
    summary="邀请二级干系人",
    description="内部员工或一级干系人按邮箱邀请外部人员加入项目，未注册时发送注册链接。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[InvitationData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def create_invitation(
    payload: InvitationCreateRequest,
    request: Request,
    project_id: UUID = Path(..., description="项目 ID。"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
):
    """邀请干系人。"""
    outcome = invite_stakeholder(
        db,
        inviter=principal,
        project_id=project_id,
        email=payload.email,
        name=payload.name,
        message=payload.message,
    )
    audit_log(
        db,
        request,
        principal,
        action="project.stakeholder.invite",
        resource_type="project_stakeholder",
        resource_id=str(outcome.grant.id),
        after_json={"contact_id": str(outcome.contact.id), "contact_created": outcome.contact_created},
    )
    db.commit()

    results = dispatch_effects(outcome.effects, dispatcher)
    return success(
        request,
        {
            "contact_id": outcome.contact.id,
            "grant_id": outcome.grant.id,
            "contact_created": outcome.contact_created,
            "registration_required": outcome.contact.password_hash is None,
            "email_delivered": all(item.success for item in results),
        },
    )
