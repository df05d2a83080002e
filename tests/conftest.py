"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite database per test
- Users and an organization covering every access tier
- HTTPX AsyncClient with identity forwarded in a trusted header
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session, sessionmaker

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATION_WORKERS"] = "0"
os.environ["RESEND_API_KEY"] = ""

from orgtree.core.config import settings
from orgtree.core.deps import get_db
from orgtree.db.enums import OrgRole, SystemRole
from orgtree.db.models import Membership, Organization, User
from orgtree.db.session import build_engine, init_db
from orgtree.main import app
from orgtree.services import notification_service

USER_HEADER = "X-Test-User-Id"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    test_engine = build_engine("sqlite://")
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def inline_notifications():
    """Run notification jobs inline so tests can observe them."""
    notification_service.configure_dispatch(None)
    yield
    notification_service.configure_dispatch(None)


# =============================================================================
# Model Fixtures
# =============================================================================

def make_user(db: Session, name: str, system_role: SystemRole = SystemRole.USER, **kwargs) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{name.lower().replace(' ', '.')}-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name,
        system_role=system_role.value,
        **kwargs,
    )
    db.add(user)
    db.flush()
    return user


def add_member(db: Session, org: Organization, user: User, role: OrgRole) -> Membership:
    membership = Membership(
        id=uuid.uuid4(),
        organization_id=org.id,
        user_id=user.id,
        role=role.value,
    )
    db.add(membership)
    db.flush()
    return membership


@dataclass
class OrgFixture:
    """An organization with one user per access tier."""
    org: Organization
    owner: User
    admin: User
    editor: User
    viewer: User
    outsider: User
    superuser: User


@pytest.fixture(scope="function")
def org_setup(db: Session) -> OrgFixture:
    owner = make_user(db, "Olivia Owner")
    admin = make_user(db, "Adam Admin")
    editor = make_user(db, "Erin Editor")
    viewer = make_user(db, "Victor Viewer")
    outsider = make_user(db, "Oscar Outsider")
    superuser = make_user(db, "Sam Super", system_role=SystemRole.SUPERUSER)

    org = Organization(id=uuid.uuid4(), name="Test Organization", owner_user_id=owner.id)
    db.add(org)
    db.flush()

    add_member(db, org, admin, OrgRole.ADMIN)
    add_member(db, org, editor, OrgRole.EDITOR)
    add_member(db, org, viewer, OrgRole.VIEWER)
    db.commit()

    return OrgFixture(
        org=org,
        owner=owner,
        admin=admin,
        editor=editor,
        viewer=viewer,
        outsider=outsider,
        superuser=superuser,
    )


# =============================================================================
# HTTP Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient bound to the test database.

    Identity is forwarded in USER_HEADER; use ``as_user`` to build headers.
    """
    def override_get_db():
        yield db

    monkeypatch.setattr(settings, "TRUSTED_USER_HEADER", USER_HEADER)
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


def as_user(user: User) -> dict[str, str]:
    return {USER_HEADER: str(user.id)}
