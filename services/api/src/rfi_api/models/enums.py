"""领域枚举定义。"""

from enum import StrEnum


class UserRole(StrEnum):
    """内部员工角色。"""

    USER = "user"  # 普通员工，可访问全部项目。
    MANAGER = "manager"  # 项目经理。
    ADMIN = "admin"  # 管理员，可审批访问申请与执行维护操作。


class StakeholderRole(StrEnum):
    """外部干系人角色。"""

    L1 = "stakeholder_l1"  # 一级干系人，可邀请二级干系人。
    L2 = "stakeholder_l2"  # 二级干系人，不可邀请。


class PrincipalType(StrEnum):
    """认证主体类型。"""

    INTERNAL = "internal"  # 内部员工（users 表）。
    STAKEHOLDER = "stakeholder"  # 外部联系人（contacts 表）。


class AccessRequestStatus(StrEnum):
    """访问申请状态，除 pending 外均为终态。"""

    PENDING = "pending"  # 待管理员审核。
    APPROVED = "approved"  # 管理员审批通过。
    REJECTED = "rejected"  # 管理员驳回。
    AUTO_APPROVED = "auto_approved"  # 邮箱域匹配后自动通过。


class RegistrationTokenType(StrEnum):
    """注册令牌来源。"""

    AUTO_APPROVED = "auto_approved"  # 自动审批或系统直接发放。
    REQUESTED = "requested"  # 访问申请经管理员审批后发放。
    INVITED = "invited"  # 内部员工或一级干系人邀请。


class AuditActorType(StrEnum):
    """审计操作人类型。"""

    USER = "user"
    CONTACT = "contact"
    ANONYMOUS = "anonymous"  # 免登录的公开申请。


def stakeholder_level_for_role(role: str | None) -> int:
    """根据干系人角色映射项目授权级别。"""
    if role == StakeholderRole.L2:
        return 2
    return 1
