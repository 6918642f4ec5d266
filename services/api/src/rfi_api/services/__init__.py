"""服务层能力导出集合。"""

from rfi_api.services.access_requests import (
    AccessRequestOutcome,
    list_access_requests,
    process_access_request,
    submit_access_request,
    submit_public_access_request,
)
from rfi_api.services.audit import audit_log
from rfi_api.services.credentials import burn_verification, hash_password, verify_password
from rfi_api.services.local_auth import issue_access_token
from rfi_api.services.notifications import EmailDispatcher, dispatch_effects
from rfi_api.services.permissions import (
    can_access_project,
    can_administer,
    can_invite,
    ensure_contact_in_scope,
    list_project_stakeholders,
)
from rfi_api.services.principals import (
    InternalPrincipal,
    Principal,
    StakeholderPrincipal,
    load_principal,
    normalize_email,
    resolve_principal,
)
from rfi_api.services.registration import (
    cleanup_expired_tokens,
    describe_registration_token,
    get_registration_status,
    issue_registration_token,
    redeem_registration_token,
    registration_url,
)
from rfi_api.services.soft_delete import (
    SoftDeleteMode,
    client_deletion_blockers,
    count_visible,
    mark_deleted,
    mark_restored,
    repair_inconsistent_deletes,
    soft_delete_client,
    soft_delete_contact,
    visibility_filter,
)
from rfi_api.services.stakeholders import (
    activate_stakeholder_account,
    add_stakeholder,
    deactivate_stakeholder_account,
    invite_stakeholder,
    remove_stakeholder,
)

__all__ = [
    "audit_log",
    "hash_password",
    "verify_password",
    "burn_verification",
    "issue_access_token",
    "normalize_email",
    "Principal",
    "InternalPrincipal",
    "StakeholderPrincipal",
    "resolve_principal",
    "load_principal",
    "can_access_project",
    "can_invite",
    "can_administer",
    "ensure_contact_in_scope",
    "list_project_stakeholders",
    "AccessRequestOutcome",
    "submit_access_request",
    "submit_public_access_request",
    "process_access_request",
    "list_access_requests",
    "issue_registration_token",
    "redeem_registration_token",
    "describe_registration_token",
    "get_registration_status",
    "cleanup_expired_tokens",
    "registration_url",
    "add_stakeholder",
    "remove_stakeholder",
    "invite_stakeholder",
    "deactivate_stakeholder_account",
    "activate_stakeholder_account",
    "SoftDeleteMode",
    "visibility_filter",
    "count_visible",
    "mark_deleted",
    "mark_restored",
    "repair_inconsistent_deletes",
    "client_deletion_blockers",
    "soft_delete_client",
    "soft_delete_contact",
    "EmailDispatcher",
    "dispatch_effects",
]
