"""Pytest configuration and fixtures."""

import os

# Settings are cached on first import, so the environment has to be in
# place before anything from portal is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAIL_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["BASE_DOMAIN"] = "example.com"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from portal.core.constants import RoleType, SubscriptionType
from portal.core.security import get_password_hash
from portal.database import Base, SessionLocal, engine, get_db, seed_reference_data
from portal.main import app
from portal.middleware.session import RedisSessionStore
from portal.models import Client, ClientStyling, User, UserRole

DEFAULT_PASSWORD = "correct-horse-battery"


class FakeRedis:
    """
    In-memory stand-in for the few redis.Redis commands the app uses.

    Expiry is recorded but never enforced; tests that care about a
    window's end manipulate the stored state directly.
    """

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = str(value)
        self.ttls[key] = int(ttl)
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    def expire(self, key, ttl):
        if key not in self.data:
            return False
        self.ttls[key] = int(ttl)
        return True

    def ttl(self, key):
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    def ping(self):
        return True

    def close(self):
        pass


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Fresh in-memory schema, seeded with subscription features."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    seed_reference_data(session)

    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def fake_redis():
    """Point sessions and rate limiting at a FakeRedis for one test."""
    previous_redis = app.state.redis
    previous_store = app.state.session_store

    redis_client = FakeRedis()
    app.state.redis = redis_client
    app.state.session_store = RedisSessionStore(redis_client)

    try:
        yield redis_client
    finally:
        app.state.redis = previous_redis
        app.state.session_store = previous_store


@pytest.fixture
def test_client(db_session: Session, fake_redis):
    """TestClient sharing the test's database session."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # conftest closes it

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_workspace(db_session: Session):
    """
    Factory creating an active client with one owner user.

    Returns (client, user).
    """

    def _make(
        workspace_url="acme",
        email_address="owner@example.com",
        password=DEFAULT_PASSWORD,
        subscription_id=SubscriptionType.TRIAL,
        subscription_end_date=None,
        email_verified=False,
        styling=None,
        default_language=1,
        with_role=True,
    ):
        now = datetime.utcnow()
        client = Client(
            name=workspace_url.title(),
            workspace_url=workspace_url,
            subscription_id=subscription_id,
            subscription_start_date=now,
            subscription_end_date=subscription_end_date or now + timedelta(days=14),
            default_language=default_language,
        )
        db_session.add(client)
        db_session.flush()

        if styling is not None:
            db_session.add(ClientStyling(client_id=client.id, **styling))

        user = User(
            client_id=client.id,
            email_address=email_address,
            password=get_password_hash(password),
            first_name="Ada",
            last_name="Lovelace",
            language=default_language,
            email_verified=email_verified,
        )
        db_session.add(user)
        db_session.flush()

        if with_role:
            db_session.add(UserRole(user_id=user.id, role_id=RoleType.OWNER, active=True))

        db_session.commit()
        return client, user

    return _make


@pytest.fixture
def login(test_client):
    """Log in through the API and return the JWT."""

    def _login(workspace_url="acme", email_address="owner@example.com", password=DEFAULT_PASSWORD):
        response = test_client.post(
            "/api/v1/authentication/login",
            json={
                "workspaceURL": workspace_url,
                "emailAddress": email_address,
                "password": password,
            },
        )
        assert response.status_code == 200, response.json()
        return response.json()["token"]

    return _login

