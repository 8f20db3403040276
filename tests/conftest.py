import os
import sys
from types import SimpleNamespace

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from choreplan import db
from choreplan import models  # ensure models are registered with metadata
from choreplan.auth import require_user
from choreplan.main import app
from choreplan.models import Category, Household, HouseholdMember, User


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


def reset_database():
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)


db.engine = test_engine
app.dependency_overrides[db.get_session] = override_get_session


def add_user(session: Session, username: str, first_name: str, last_name: str = "Test") -> User:
    user = User(username=username, first_name=first_name, last_name=last_name)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def add_household(session: Session, name: str, members: list[User]) -> Household:
    household = Household(name=name)
    session.add(household)
    session.commit()
    session.refresh(household)
    for index, member in enumerate(members):
        session.add(
            HouseholdMember(user_id=member.id, household_id=household.id, is_owner=index == 0)
        )
    session.commit()
    return household


def add_category(session: Session, household: Household, name: str) -> Category:
    category = Category(household_id=household.id, name=name)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@pytest.fixture(autouse=True)
def setup_db():
    reset_database()
    yield
    app.dependency_overrides.pop(require_user, None)


@pytest.fixture
def session():
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def home(session):
    """Two-member household plus an unrelated household next door."""
    alice = add_user(session, "alice", "Alice")
    bob = add_user(session, "bob", "Bob")
    carol = add_user(session, "carol", "Carol")
    household = add_household(session, "Home", [alice, bob])
    neighbours = add_household(session, "Next door", [carol])
    return SimpleNamespace(
        household=household,
        alice=alice,
        bob=bob,
        carol=carol,
        neighbours=neighbours,
        cleaning=add_category(session, household, "Cleaning"),
        kitchen=add_category(session, household, "Kitchen"),
        garden=add_category(session, neighbours, "Garden"),
    )


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def login_as():
    def _login(user: User):
        app.dependency_overrides[require_user] = lambda: user

    return _login
