"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from rfi_api.api.router import api_router
from rfi_api.core.config import get_settings
from rfi_api.exceptions import register_exception_handlers
from rfi_api.middlewares import register_middlewares

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "RFI Tracker 访问控制与身份解析接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "内部员工与外部干系人共用登录入口，通过访问令牌进行认证。\n"
            "外部干系人的项目访问范围以数据库中的项目授权为准。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录、登出、当前身份与凭令牌注册。"},
            {"name": "public", "description": "免登录的公开访问申请。"},
            {"name": "access-requests", "description": "项目访问申请提交、查询与审批。"},
            {"name": "stakeholders", "description": "项目干系人授权与邀请。"},
            {"name": "contacts", "description": "联系人注册状态与删除（内部员工）。"},
            {"name": "clients", "description": "客户删除（管理员）。"},
            {"name": "admin", "description": "软删除修复、令牌清理与干系人账号启停。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
