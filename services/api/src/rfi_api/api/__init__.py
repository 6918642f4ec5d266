"""路由模块导出集合。"""

from . import access_requests, admin, auth, clients, contacts, health, public, stakeholders

__all__ = [
    "access_requests",
    "admin",
    "auth",
    "clients",
    "contacts",
    "health",
    "public",
    "stakeholders",
]
