from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.requests import Request

import rfi_api.models  # noqa: F401
from rfi_api.core import security as security_module
from rfi_api.core.config import get_settings
from rfi_api.models import Client, Contact, Project, ProjectStakeholder, User
from rfi_api.models.base import Base
from rfi_api.models.enums import StakeholderRole, UserRole
from rfi_api.services.credentials import hash_password

PASSWORD = "StrongPassw0rd!"


@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(_type_, _compiler, **_kwargs):
    return "JSON"


@compiles(INET, "sqlite")
def _compile_inet_sqlite(_type_, _compiler, **_kwargs):
    return "TEXT"


def _reset_runtime_auth_state() -> None:
    with security_module._LOCAL_LOCK:
        security_module._LOCAL_BLACKLIST.clear()
    security_module._redis_client = None


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RFI_AUTH_JWT_SECRET", "unit-test-secret-key-at-least-32-bytes")
    monkeypatch.setenv("RFI_AUTH_JWT_ALGORITHMS", "HS256")
    # 降低哈希迭代次数，避免测试过慢。
    monkeypatch.setenv("RFI_AUTH_PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("RFI_APP_PUBLIC_URL", "https://rfi.example.com")
    monkeypatch.delenv("RFI_SMTP_HOST", raising=False)
    monkeypatch.delenv("RFI_REDIS_URL", raising=False)
    monkeypatch.delenv("RFI_AUTO_APPROVAL_BLOCKED_DOMAINS", raising=False)
    get_settings.cache_clear()
    _reset_runtime_auth_state()
    yield get_settings()
    _reset_runtime_auth_state()
    get_settings.cache_clear()


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autoflush=False, autocommit=False, class_=Session)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


class ModelFactory:
    """按业务默认值快速构造测试数据，只 flush 不提交。"""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._granting_user: User | None = None

    def _save(self, row):
        self.db.add(row)
        self.db.flush()
        return row

    def client(self, name: str = "Acme Construction") -> Client:
        return self._save(Client(name=name, active=True))

    def project(self, client: Client, name: str = "Harbor Tower", number: str | None = None) -> Project:
        return self._save(Project(client_id=client.id, name=name, project_number=number, active=True))

    def contact(
        self,
        client: Client,
        email: str,
        *,
        name: str | None = None,
        password: str | None = None,
        role: str | None = StakeholderRole.L1,
        eligible: bool | None = None,
        active: bool = True,
    ) -> Contact:
        registered = password is not None
        return self._save(
            Contact(
                client_id=client.id,
                name=name or email.split("@", 1)[0],
                email=email,
                password_hash=hash_password(password) if registered else None,
                role=role,
                email_verified=registered,
                registration_eligible=registered if eligible is None else eligible,
                active=active,
            )
        )

    def user(
        self,
        email: str,
        *,
        role: str = UserRole.USER,
        password: str = PASSWORD,
        active: bool = True,
    ) -> User:
        return self._save(
            User(
                email=email,
                display_name=email.split("@", 1)[0],
                password_hash=hash_password(password),
                role=role,
                active=active,
            )
        )

    def grant(
        self,
        project: Project,
        contact: Contact,
        *,
        level: int = 1,
        added_by_user: User | None = None,
        added_by_contact: Contact | None = None,
        auto_approved: bool = False,
    ) -> ProjectStakeholder:
        # 授权来源必须且只能有一个，未指定时记在统一的员工账号名下。
        if added_by_user is None and added_by_contact is None:
            if self._granting_user is None:
                self._granting_user = self.user("grants@rfi.example.com")
            added_by_user = self._granting_user
        return self._save(
            ProjectStakeholder(
                project_id=project.id,
                contact_id=contact.id,
                stakeholder_level=level,
                added_by_user_id=added_by_user.id if added_by_user else None,
                added_by_contact_id=added_by_contact.id if added_by_contact else None,
                auto_approved=auto_approved,
            )
        )


@pytest.fixture
def make(db_session) -> ModelFactory:
    return ModelFactory(db_session)


@pytest.fixture
def file_session_factory(tmp_path):
    """文件型 SQLite，多个会话各持独立连接，用于模拟并发事务。"""
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'rfi.db'}", future=True)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    engine.dispose()


@pytest.fixture
def model_factory() -> type[ModelFactory]:
    return ModelFactory


@pytest.fixture
def fake_request() -> Request:
    request = Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/api/test",
            "headers": [(b"user-agent", b"pytest")],
            "query_string": b"",
            "client": ("127.0.0.1", 12345),
            "server": ("testserver", 80),
            "scheme": "http",
        }
    )
    request.state.request_id = "test-request-id"
    return request
