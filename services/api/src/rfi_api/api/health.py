"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from rfi_api.core.config import get_settings
from rfi_api.db.session import get_db
from rfi_api.schemas.common import ErrorResponse, SuccessResponse
from rfi_api.schemas.responses import HealthStatusData
from rfi_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


def _status_payload(state: str) -> dict:
    settings = get_settings()
    return {"status": state, "service": settings.app_name, "env": settings.app_env}


@router.get(
    "/live",
    summary="存活探针",
    description="仅表示进程存活，不访问数据库。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    return success(request, _status_payload("ok"))


@router.get(
    "/ready",
    summary="就绪探针",
    description="执行 `select 1` 确认数据库可用，登录与授权查询均依赖数据库。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    db.execute(text("select 1"))
    payload = _status_payload("ready")
    payload["database"] = db.get_bind().dialect.name
    return success(request, payload)
