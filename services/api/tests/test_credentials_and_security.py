from uuid import uuid4

import pytest
from fastapi import HTTPException

from rfi_api.core.security import (
    encode_claims,
    is_token_jti_revoked,
    parse_authorization_header,
    revoke_token_jti,
)
from rfi_api.models.enums import PrincipalType, StakeholderRole, UserRole
from rfi_api.services.credentials import (
    burn_verification,
    generate_temporary_password,
    hash_password,
    verify_password,
)
from rfi_api.services.local_auth import issue_access_token
from rfi_api.services.principals import InternalPrincipal, StakeholderPrincipal


def test_hash_and_verify_password():
    hashed = hash_password("StrongPassw0rd!", iterations=1000)

    assert hashed.startswith("pbkdf2_sha256$1000$")
    assert verify_password("StrongPassw0rd!", hashed)
    assert not verify_password("wrong-password", hashed)
    # 同一口令两次哈希的盐不同。
    assert hash_password("StrongPassw0rd!", iterations=1000) != hashed


@pytest.mark.parametrize(
    "stored",
    [None, "", "plain-text", "md5$1000$abc$def", "pbkdf2_sha256$x$abc$def", "pbkdf2_sha256$0$AAAA$AAAA"],
)
def test_verify_password_rejects_malformed_hashes(stored):
    assert verify_password("anything", stored) is False


def test_burn_verification_and_temporary_password():
    burn_verification("whatever")

    temporary = generate_temporary_password()
    assert len(temporary) == 12
    assert generate_temporary_password(16) != temporary


def _stakeholder(role: str = StakeholderRole.L1) -> StakeholderPrincipal:
    return StakeholderPrincipal(
        id=uuid4(),
        email="bob@acme.com",
        role=role,
        display_name="Bob",
        client_id=uuid4(),
        project_access=frozenset({uuid4(), uuid4()}),
    )


def test_issue_access_token_for_stakeholder_round_trips_claims():
    principal = _stakeholder()

    token, exp_ts, expires_at = issue_access_token(principal)
    claims = parse_authorization_header(f"Bearer {token}")

    assert claims.subject == str(principal.id)
    assert claims.user_type == PrincipalType.STAKEHOLDER
    assert claims.role == StakeholderRole.L1
    assert claims.project_access == sorted(str(item) for item in principal.project_access)
    assert claims.claims["can_invite"] is True
    assert claims.claims["client_id"] == str(principal.client_id)
    assert claims.exp == exp_ts == int(expires_at.timestamp())
    assert claims.jti


def test_issue_access_token_for_internal_user_has_no_project_snapshot():
    principal = InternalPrincipal(id=uuid4(), email="admin@rfi.example.com", role=UserRole.ADMIN, display_name="Admin")

    token, _, _ = issue_access_token(principal)
    claims = parse_authorization_header(f"Bearer {token}")

    assert claims.user_type == PrincipalType.INTERNAL
    assert claims.project_access == []
    assert "client_id" not in claims.claims


def test_level_two_token_cannot_invite():
    token, _, _ = issue_access_token(_stakeholder(StakeholderRole.L2))
    claims = parse_authorization_header(f"Bearer {token}")
    assert claims.claims["can_invite"] is False


def test_revoked_jti_is_rejected():
    token, exp_ts, _ = issue_access_token(_stakeholder())
    claims = parse_authorization_header(f"Bearer {token}")

    revoke_token_jti(claims.jti, exp_ts)

    assert is_token_jti_revoked(claims.jti)
    with pytest.raises(HTTPException) as exc_info:
        parse_authorization_header(f"Bearer {token}")
    assert exc_info.value.status_code == 401


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer not-a-jwt"])
def test_invalid_authorization_headers_are_unauthorized(header):
    with pytest.raises(HTTPException) as exc_info:
        parse_authorization_header(header)
    assert exc_info.value.status_code == 401


def test_placeholder_token_has_specific_error_code():
    with pytest.raises(HTTPException) as exc_info:
        parse_authorization_header("Bearer {{access_token}}")
    assert exc_info.value.detail["code"] == "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED"


def test_token_without_user_type_is_rejected():
    token = encode_claims({"sub": str(uuid4()), "iss": "rfi-tracker", "exp": 4102444800})
    with pytest.raises(HTTPException) as exc_info:
        parse_authorization_header(f"Bearer {token}")
    assert exc_info.value.status_code == 401


def test_token_from_other_issuer_is_rejected():
    token = encode_claims({"sub": str(uuid4()), "user_type": "internal", "iss": "someone-else", "exp": 4102444800})
    with pytest.raises(HTTPException):
        parse_authorization_header(f"Bearer {token}")
