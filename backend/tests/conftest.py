"""Pytest configuration and fixtures."""

import pytest
from decimal import Decimal
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from silo.core.context import RequestContext
from silo.core.rbac import TokenData, UserRole
from silo.core.security import get_password_hash, token_for_user
from silo.db.base import Base
from silo.db.session import get_db, init_db, make_engine
from silo.main import app
# Import all models to ensure they're registered with Base.metadata
from silo.models import *
from silo.models.business import Branch, Business
from silo.models.item import CompositeItemComponent, Item
from silo.models.user import User, UserStatus
from silo.models.vendor import Vendor, VendorStatus

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
API = "/api/v1"
PASSWORD = "testpass123"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = make_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            # Discard whatever a failed request left pending
            db_session.rollback()

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    from silo.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


# ==================== BUSINESS / USERS ====================

@pytest.fixture
def business(db_session: Session) -> Business:
    """A business with a main branch and a second branch."""
    business = Business(name="Test Kitchen", currency="SAR", max_users=5)
    db_session.add(business)
    db_session.flush()
    db_session.add_all([
        Branch(business_id=business.id, name="Main", is_main=True),
        Branch(business_id=business.id, name="Downtown"),
    ])
    db_session.commit()
    db_session.refresh(business)
    return business


@pytest.fixture
def main_branch(business: Business) -> Branch:
    return business.branches[0]


@pytest.fixture
def second_branch(business: Business) -> Branch:
    return business.branches[1]


def _make_user(db: Session, business: Business, username: str, role: UserRole, branch_id=None) -> User:
    user = User(
        business_id=business.id,
        branch_id=branch_id,
        username=username,
        password_hash=get_password_hash(PASSWORD),
        role=role,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db_session: Session, business: Business) -> User:
    user = _make_user(db_session, business, "owner", UserRole.OWNER)
    business.owner_id = user.id
    db_session.commit()
    return user


@pytest.fixture
def manager(db_session: Session, business: Business) -> User:
    return _make_user(db_session, business, "manager", UserRole.MANAGER)


@pytest.fixture
def employee(db_session: Session, business: Business) -> User:
    return _make_user(db_session, business, "employee", UserRole.EMPLOYEE)


@pytest.fixture
def pos_user(db_session: Session, business: Business) -> User:
    return _make_user(db_session, business, "till", UserRole.POS)


@pytest.fixture
def headers_for() -> Callable[..., dict]:
    """Build request headers for a user, optionally pinned to a branch."""
    def build(user: User, branch: Branch = None, business: Business = None) -> dict:
        headers = {"Authorization": f"Bearer {token_for_user(user)}"}
        if branch is not None:
            headers["X-Branch-Id"] = str(branch.id)
        if business is not None:
            headers["X-Business-Id"] = str(business.id)
        return headers
    return build


@pytest.fixture
def auth_headers(owner: User, main_branch: Branch, headers_for) -> dict:
    """Owner headers scoped to the main branch."""
    return headers_for(owner, main_branch)


@pytest.fixture
def ctx_for(business: Business, main_branch: Branch) -> Callable[..., RequestContext]:
    """Build a service-level request context for a user."""
    def build(user: User, branch: Branch = None) -> RequestContext:
        token = TokenData(user.id, user.username, user.role, user.business_id, user.branch_id)
        return RequestContext(token, business.id, (branch or main_branch).id)
    return build


# ==================== CATALOG ====================

@pytest.fixture
def flour(db_session: Session, business: Business) -> Item:
    """Weight item used in grams and stocked in Kg."""
    item = Item(
        business_id=business.id,
        name="Flour",
        category="Dry goods",
        unit="grams",
        storage_unit="Kg",
        cost_per_unit=Decimal("4.0000"),
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def eggs(db_session: Session, business: Business) -> Item:
    item = Item(
        business_id=business.id,
        name="Eggs",
        category="Dairy",
        unit="piece",
        storage_unit="piece",
        cost_per_unit=Decimal("0.5000"),
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def shared_item(db_session: Session) -> Item:
    """Catalogue item shared by all businesses."""
    item = Item(
        business_id=None,
        name="Salt",
        unit="grams",
        storage_unit="Kg",
        cost_per_unit=Decimal("2.0000"),
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def dough(db_session: Session, business: Business, flour: Item, eggs: Item) -> Item:
    """Composite: one batch = 2 Kg of dough from 500 g flour and 2 eggs."""
    item = Item(
        business_id=business.id,
        name="Dough",
        unit="Kg",
        storage_unit="Kg",
        is_composite=True,
        batch_quantity=Decimal("2"),
        batch_unit="Kg",
    )
    db_session.add(item)
    db_session.flush()
    db_session.add_all([
        CompositeItemComponent(composite_item_id=item.id, component_item_id=flour.id, quantity=Decimal("500")),
        CompositeItemComponent(composite_item_id=item.id, component_item_id=eggs.id, quantity=Decimal("2")),
    ])
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def vendor(db_session: Session, business: Business) -> Vendor:
    vendor = Vendor(
        business_id=business.id,
        code="VND-0001",
        name="Fresh Foods Co",
        country="Saudi Arabia",
        payment_terms=30,
        status=VendorStatus.ACTIVE,
    )
    db_session.add(vendor)
    db_session.commit()
    db_session.refresh(vendor)
    return vendor


@pytest.fixture
def add_stock(client: TestClient, auth_headers: dict) -> Callable[..., dict]:
    """Put stock on hand through the manual addition endpoint."""
    def add(item: Item, quantity, headers: dict = None) -> dict:
        response = client.post(
            f"{API}/stock/add",
            json={"item_id": item.id, "quantity": str(quantity), "notes": "Opening stock"},
            headers=headers or auth_headers,
        )
        assert response.status_code == 200, response.text
        return response.json()
    return add
