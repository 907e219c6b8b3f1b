"""
Pytest fixtures for FinTab backend tests.

Provides the application on an in-memory database, a per-test wipe of every
table, and a small business with an owner, a manager, a staff member, a
customer and a tiered product.
"""

from decimal import Decimal

import pytest

from fintab import create_app
from fintab.extensions import db
from fintab.models import Customer, Membership, Product, ProductPriceTier, User
from fintab.services import bank_service, tenant_service
from fintab.services.auth_service import hash_password
from fintab.services.session_service import create_session


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test; the schema is kept."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def make_user(email: str, display_name: str) -> User:
    user = User(
        email=email,
        display_name=display_name,
        password_hash=hash_password(PASSWORD, rounds=4),
    )
    db.session.add(user)
    db.session.commit()
    return user


def add_member(business, user, role: str) -> Membership:
    membership = Membership(business_id=business.id, user_id=user.id, role=role, status="Active")
    db.session.add(membership)
    db.session.commit()
    return membership


@pytest.fixture(scope='function')
def owner(db_session):
    return make_user("owner@corner.shop", "Olivia Owner")


@pytest.fixture(scope='function')
def business(db_session, owner):
    """Business registered by owner (Owner membership created with it)."""
    return tenant_service.register_business(owner=owner, name="Corner Shop", business_type="Retail")


@pytest.fixture(scope='function')
def owner_membership(db_session, business, owner):
    return db_session.query(Membership).filter_by(business_id=business.id, user_id=owner.id).one()


@pytest.fixture(scope='function')
def staff(db_session, business):
    return make_user("sam@corner.shop", "Sam Staff")


@pytest.fixture(scope='function')
def staff_membership(db_session, business, staff):
    return add_member(business, staff, "Staff")


@pytest.fixture(scope='function')
def manager(db_session, business):
    return make_user("mia@corner.shop", "Mia Manager")


@pytest.fixture(scope='function')
def manager_membership(db_session, business, manager):
    return add_member(business, manager, "Manager")


@pytest.fixture(scope='function')
def customer(db_session, business):
    customer = Customer(business_id=business.id, name="Walk-in Wendy", email="wendy@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product(db_session, business):
    """Price 100, 90 each from 5 units, 10% commission, 20 in stock."""
    product = Product(
        business_id=business.id,
        sku="WID-001",
        name="Widget",
        price_cents=100,
        cost_price_cents=60,
        stock=20,
        commission_percentage=Decimal("10"),
    )
    product.price_tiers = [ProductPriceTier(min_quantity=5, price_cents=90)]
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def bank_account(db_session, business, owner):
    return bank_service.create_account(
        business_id=business.id,
        bank_name="First Bank",
        account_name="Operating",
        account_number="0001",
        opening_balance_cents=20000,
        user_id=owner.id,
    )


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Callable: sign a user in (service level) and return Authorization headers."""
    def _headers(user) -> dict:
        _session, token = create_session(user)
        return {'Authorization': f'Bearer {token}'}
    return _headers
