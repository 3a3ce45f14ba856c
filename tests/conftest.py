import os
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.getenv("DATABASE_URL", os.environ["TEST_DATABASE_URL"]))

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.plan_constants import (
    LinkIntentType,
    LinkRequestStatus,
    OrgStatus,
    PlanStatus,
    PlanType,
    WorkspaceStatus,
)
from database import Base
from models.organization import Organization
from models.workspace import EnterpriseOrgLinkRequest, Workspace, WorkspaceOrganization

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# PostgreSQL-only column types render as TEXT on SQLite.
@compiles(UUID, "sqlite")  # type: ignore[misc]
def _compile_uuid_sqlite(_element, _compiler, **_kw):  # pragma: no cover - sqlite compat
    return "TEXT"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN on its own; take control so SAVEPOINTs nest properly.
    @event.listens_for(test_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _record) -> None:  # pragma: no cover - SQLAlchemy callback
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine, "begin")
    def _emit_begin(connection) -> None:  # pragma: no cover - SQLAlchemy callback
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def make_org(db_session: Session) -> Callable[..., Organization]:
    counter = {"value": 0}

    def _make(
        *,
        plan_type: PlanType = PlanType.FREE,
        plan_status: PlanStatus = PlanStatus.ACTIVE,
        status: OrgStatus = OrgStatus.APPROVED,
        plan_end_at: Optional[datetime] = None,
        **fields: Any,
    ) -> Organization:
        counter["value"] += 1
        index = counter["value"]
        fields.setdefault("name", f"Org {index}")
        fields.setdefault("slug", f"org-{index}")
        fields.setdefault("email", f"contact{index}@org{index}.example")
        organization = Organization(
            plan_type=plan_type.value,
            plan_status=plan_status.value,
            status=status.value,
            plan_end_at=plan_end_at,
            **fields,
        )
        db_session.add(organization)
        db_session.flush()
        return organization

    return _make


@pytest.fixture()
def make_workspace(db_session: Session) -> Callable[..., Workspace]:
    def _make(*linked: Organization, status: WorkspaceStatus = WorkspaceStatus.ACTIVE, **fields: Any) -> Workspace:
        fields.setdefault("name", "Workspace")
        workspace = Workspace(status=status.value, **fields)
        db_session.add(workspace)
        db_session.flush()
        for organization in linked:
            db_session.add(WorkspaceOrganization(workspace_id=workspace.id, organization_id=organization.id))
        db_session.flush()
        return workspace

    return _make


@pytest.fixture()
def make_link_request(db_session: Session) -> Callable[..., EnterpriseOrgLinkRequest]:
    def _make(
        enterprise: Organization,
        organization: Organization,
        *,
        workspace: Optional[Workspace] = None,
        intent_type: LinkIntentType = LinkIntentType.LINK_EXISTING,
        status: LinkRequestStatus = LinkRequestStatus.PENDING,
    ) -> EnterpriseOrgLinkRequest:
        request = EnterpriseOrgLinkRequest(
            enterprise_id=enterprise.id,
            organization_id=organization.id,
            workspace_id=workspace.id if workspace is not None else None,
            intent_type=intent_type.value,
            status=status.value,
            requested_by="enterprise-admin",
        )
        db_session.add(request)
        db_session.flush()
        return request

    return _make
