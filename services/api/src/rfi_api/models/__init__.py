"""ORM 模型导出集合。"""

from rfi_api.models.access import AccessRequest, RegistrationToken
from rfi_api.models.audit import AuditLog
from rfi_api.models.client import Client, Contact
from rfi_api.models.project import Project, ProjectStakeholder
from rfi_api.models.user import User

__all__ = [
    "AccessRequest",
    "AuditLog",
    "Client",
    "Contact",
    "Project",
    "ProjectStakeholder",
    "RegistrationToken",
    "User",
]
