"""顶层路由注册。"""

from fastapi import APIRouter

from . import access_requests, admin, auth, clients, contacts, health, public, stakeholders

api_router = APIRouter()

# 固定注册顺序，便于在线接口文档展示和问题定位。
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(public.router)
api_router.include_router(access_requests.router)
api_router.include_router(stakeholders.router)
api_router.include_router(contacts.router)
api_router.include_router(clients.router)
api_router.include_router(admin.router)
