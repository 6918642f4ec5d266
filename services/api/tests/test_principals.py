import pytest
from fastapi import HTTPException

from rfi_api.core.security import TokenClaims
from rfi_api.exceptions import InvalidCredentials
from rfi_api.models.enums import PrincipalType, StakeholderRole, UserRole
from rfi_api.services.principals import (
    InternalPrincipal,
    StakeholderPrincipal,
    email_domain,
    load_principal,
    normalize_email,
    resolve_principal,
)
from rfi_api.services.soft_delete import mark_deleted

PASSWORD = "StrongPassw0rd!"


def test_normalize_email_and_domain():
    assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
    assert email_domain("Bob@ACME.com") == "acme.com"
    assert email_domain("not-an-email") == ""


def test_internal_user_takes_priority_over_contact_with_same_email(db_session, make):
    client = make.client()
    make.user("shared@acme.com", role=UserRole.MANAGER, password="internal-secret")
    make.contact(client, "shared@acme.com", password="contact-secret")

    principal = resolve_principal(db_session, "Shared@Acme.com", "internal-secret")
    assert isinstance(principal, InternalPrincipal)
    assert principal.role == UserRole.MANAGER

    # 员工口令错误时不回退到联系人。
    with pytest.raises(InvalidCredentials):
        resolve_principal(db_session, "shared@acme.com", "contact-secret")


def test_registered_contact_resolves_with_visible_grants(db_session, make):
    client = make.client()
    live = make.project(client, "Live Project")
    archived = make.project(client, "Archived Project")
    contact = make.contact(client, "bob@acme.com", password=PASSWORD)
    make.grant(live, contact)
    make.grant(archived, contact)
    mark_deleted(archived)
    db_session.flush()

    principal = resolve_principal(db_session, " BOB@acme.com ", PASSWORD)

    assert isinstance(principal, StakeholderPrincipal)
    assert principal.principal_type == PrincipalType.STAKEHOLDER
    assert principal.client_id == client.id
    assert principal.project_access == frozenset({live.id})
    assert contact.last_login_at is not None


def test_unregistered_contact_cannot_log_in(db_session, make):
    client = make.client()
    make.contact(client, "pending@acme.com", eligible=True)

    with pytest.raises(InvalidCredentials):
        resolve_principal(db_session, "pending@acme.com", PASSWORD)


@pytest.mark.parametrize("email,password", [("nobody@acme.com", PASSWORD), ("bob@acme.com", "wrong-password")])
def test_login_failures_share_one_error(db_session, make, email, password):
    make.contact(make.client(), "bob@acme.com", password=PASSWORD)

    with pytest.raises(InvalidCredentials) as exc_info:
        resolve_principal(db_session, email, password)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["code"] == "INVALID_CREDENTIALS"


def test_inactive_or_deleted_accounts_cannot_log_in(db_session, make):
    client = make.client()
    make.user("former@rfi.example.com", active=False)
    deleted = make.contact(client, "gone@acme.com", password=PASSWORD)
    mark_deleted(deleted)
    db_session.flush()

    with pytest.raises(InvalidCredentials):
        resolve_principal(db_session, "former@rfi.example.com", PASSWORD)
    with pytest.raises(InvalidCredentials):
        resolve_principal(db_session, "gone@acme.com", PASSWORD)


def test_load_principal_rereads_database(db_session, make):
    client = make.client()
    project = make.project(client)
    contact = make.contact(client, "bob@acme.com", password=PASSWORD)
    claims = TokenClaims(
        subject=str(contact.id),
        user_type=PrincipalType.STAKEHOLDER,
        email=contact.email,
        role=StakeholderRole.L1,
        # 令牌快照中的项目授权不参与判断。
        project_access=[str(project.id)],
    )

    assert load_principal(db_session, claims).project_access == frozenset()

    make.grant(project, contact)
    assert load_principal(db_session, claims).project_access == frozenset({project.id})

    contact.password_hash = None
    db_session.flush()
    with pytest.raises(HTTPException) as exc_info:
        load_principal(db_session, claims)
    assert exc_info.value.status_code == 401


def test_load_principal_rejects_deactivated_user_and_bad_subject(db_session, make):
    user = make.user("admin@rfi.example.com", role=UserRole.ADMIN)
    claims = TokenClaims(subject=str(user.id), user_type=PrincipalType.INTERNAL, email=user.email, role=user.role)

    principal = load_principal(db_session, claims)
    assert principal.is_admin

    user.active = False
    db_session.flush()
    with pytest.raises(HTTPException):
        load_principal(db_session, claims)

    with pytest.raises(HTTPException):
        load_principal(
            db_session,
            TokenClaims(subject="not-a-uuid", user_type=PrincipalType.INTERNAL, email=None, role=None),
        )
    with pytest.raises(HTTPException):
        load_principal(
            db_session,
            TokenClaims(subject=str(user.id), user_type="robot", email=None, role=None),
        )
