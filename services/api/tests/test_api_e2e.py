from collections.abc import Generator
from dataclasses import dataclass
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from rfi_api.db.session import get_db
from rfi_api.dependencies import get_email_dispatcher
from rfi_api.main import app
from rfi_api.models import AuditLog, Client, Project, RegistrationToken
from rfi_api.models.enums import UserRole
from rfi_api.services.notifications import DispatchResult

ADMIN_PASSWORD = "AdminPassw0rd!"
STAFF_PASSWORD = "StaffPassw0rd!"
NEW_PASSWORD = "BrandNewPassw0rd!"


class _RecordingDispatcher:
    """收集提交后邮件，不实际发送。"""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(self, to_email, subject, html_body, to_name=None) -> DispatchResult:
        self.sent.append({"to_email": to_email, "subject": subject, "html_body": html_body})
        return DispatchResult(success=True)


@dataclass
class Seed:
    client_id: str
    project_id: str


@pytest.fixture
def dispatcher() -> _RecordingDispatcher:
    return _RecordingDispatcher()


@pytest.fixture
def seed(db_session, make) -> Seed:
    make.user("admin@rfi.example.com", role=UserRole.ADMIN, password=ADMIN_PASSWORD)
    make.user("staff@rfi.example.com", role=UserRole.USER, password=STAFF_PASSWORD)
    client = make.client()
    project = make.project(client, "Harbor Tower", number="HT-2024")
    db_session.commit()
    return Seed(client_id=str(client.id), project_id=str(project.id))


@pytest.fixture
def api(session_factory, dispatcher) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_email_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(api: TestClient, email: str, password: str) -> str:
    resp = api.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["access_token"]


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health_probes_and_request_id(api):
    resp = api.get("/api/health/live")

    assert resp.status_code == 200
    body = resp.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["service"] == "RFI Tracker Access API"
    assert body["request_id"] == resp.headers["X-Request-Id"]
    assert body["meta"]["method"] == "GET"

    ready = api.get("/api/health/ready", headers={"X-Request-Id": "gateway-trace-0001"})
    assert ready.status_code == 200
    assert ready.json()["data"]["database"] == "sqlite"
    assert ready.json()["request_id"] == "gateway-trace-0001"

    bogus = api.get("/api/health/live", headers={"X-Request-Id": "bad id!"})
    assert bogus.headers["X-Request-Id"] != "bad id!"


def test_public_request_approval_and_registration_flow(api, seed, dispatcher, session_factory):
    admin_token = _login(api, "admin@rfi.example.com", ADMIN_PASSWORD)

    submitted = api.post(
        "/api/public/access-requests",
        json={
            "name": "Dana Field",
            "email": "Dana@Partner.com",
            "project_number": "ht-2024",
            "reason": "Site superintendent for the east wing.",
        },
    )
    assert submitted.status_code == 201, submitted.text
    submit_data = submitted.json()["data"]
    assert submit_data["auto_approved"] is False
    assert submit_data["request"]["status"] == "pending"
    request_id = submit_data["request"]["id"]

    listing = api.get("/api/access-requests", params={"status": "pending"}, headers=_auth(admin_token))
    assert listing.status_code == 200
    rows = listing.json()["data"]
    assert [row["id"] for row in rows] == [request_id]
    assert rows[0]["contact_email"] == "dana@partner.com"
    assert rows[0]["project_name"] == "Harbor Tower"
    assert rows[0]["currently_has_access"] is False
    assert listing.json()["meta"]["count"] == 1

    decided = api.patch(f"/api/access-requests/{request_id}", json={"status": "approved"}, headers=_auth(admin_token))
    assert decided.status_code == 200, decided.text
    decision = decided.json()["data"]
    assert decision["request"]["status"] == "approved"
    assert decision["grant_id"]
    assert decision["email_delivered"] is True
    assert [item["to_email"] for item in dispatcher.sent] == ["dana@partner.com"]

    again = api.patch(f"/api/access-requests/{request_id}", json={"status": "rejected"}, headers=_auth(admin_token))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_PROCESSED"

    with session_factory() as db:
        token = db.execute(select(RegistrationToken.token)).scalar_one()
        audit = {row.action: row for row in db.execute(select(AuditLog)).scalars()}
    assert token in dispatcher.sent[0]["html_body"]
    assert audit["access_request.public_submit"].actor_type == "anonymous"
    assert audit["access_request.public_submit"].request_id == submitted.headers["X-Request-Id"]
    assert audit["access_request.approved"].actor_type == "user"
    assert audit["access_request.approved"].actor_email == "admin@rfi.example.com"

    described = api.get(f"/api/auth/registration/{token}")
    assert described.status_code == 200
    assert described.json()["data"]["email"] == "dana@partner.com"
    assert described.json()["data"]["project_ids"] == [seed.project_id]

    registered = api.post(
        "/api/auth/register",
        json={"token": token, "email": "dana@partner.com", "password": NEW_PASSWORD},
    )
    assert registered.status_code == 201, registered.text
    stakeholder_token = registered.json()["data"]["access_token"]

    reused = api.post(
        "/api/auth/register",
        json={"token": token, "email": "dana@partner.com", "password": NEW_PASSWORD},
    )
    assert reused.status_code == 400
    assert reused.json()["error"]["code"] == "TOKEN_ALREADY_USED"

    me = api.get("/api/auth/me", headers=_auth(stakeholder_token))
    assert me.status_code == 200
    principal = me.json()["data"]
    assert principal["user_type"] == "stakeholder"
    assert principal["role"] == "stakeholder_l1"
    assert principal["client_id"] == seed.client_id
    assert principal["project_access"] == [seed.project_id]
    assert principal["can_invite"] is True
    assert principal["is_admin"] is False

    # 注册后的口令可直接登录。
    assert _login(api, "dana@partner.com", NEW_PASSWORD)

    logout = api.post("/api/auth/logout", headers=_auth(stakeholder_token))
    assert logout.status_code == 200
    assert logout.json()["data"] == {"logged_out": True, "revoked": True}

    after = api.get("/api/auth/me", headers=_auth(stakeholder_token))
    assert after.status_code == 401
    assert after.json()["error"]["code"] == "UNAUTHORIZED"


def test_login_failure_is_uniform(api, seed):
    unknown = api.post("/api/auth/login", json={"email": "nobody@rfi.example.com", "password": "whatever"})
    wrong = api.post("/api/auth/login", json={"email": "admin@rfi.example.com", "password": "whatever"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["error"]["code"] == wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"
    assert unknown.json()["error"]["message"] == wrong.json()["error"]["message"]


def test_admin_routes_reject_other_staff(api, seed):
    staff_token = _login(api, "staff@rfi.example.com", STAFF_PASSWORD)

    resp = api.get("/api/access-requests", headers=_auth(staff_token))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"

    anonymous = api.get("/api/access-requests")
    assert anonymous.status_code == 401


def test_client_with_projects_cannot_be_deleted(api, seed, session_factory):
    admin_token = _login(api, "admin@rfi.example.com", ADMIN_PASSWORD)

    resp = api.delete(f"/api/clients/{seed.client_id}", headers=_auth(admin_token))

    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "CLIENT_HAS_DEPENDENTS"
    assert error["details"]["projects"] == 1
    assert error["details"]["contacts"] == 0

    with session_factory() as db:
        assert db.get(Client, UUID(seed.client_id)).deleted_at is None


def test_stakeholder_cannot_submit_for_another_contact(api, seed, db_session, make):
    client = db_session.get(Client, UUID(seed.client_id))
    project = db_session.get(Project, UUID(seed.project_id))
    member = make.contact(client, "member@acme.com", password=NEW_PASSWORD)
    make.grant(project, member)
    other_id = str(make.contact(client, "other@acme.com").id)
    db_session.commit()

    member_token = _login(api, "member@acme.com", NEW_PASSWORD)
    resp = api.post(
        "/api/access-requests",
        json={"contact_id": other_id, "project_id": seed.project_id},
        headers=_auth(member_token),
    )
    assert resp.status_code == 403

    anonymous = api.post("/api/access-requests", json={"contact_id": other_id, "project_id": seed.project_id})
    assert anonymous.status_code == 201
    assert anonymous.json()["data"]["auto_approved"] is True
