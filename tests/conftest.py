import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
import ratelimit
from app import app
from database import Base, enable_sqlite_foreign_keys, get_db

PASSWORD = "Passw0rd!"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
event.listen(engine, "connect", enable_sqlite_foreign_keys)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    ratelimit.reset_all()
    yield
    ratelimit.reset_all()


@pytest.fixture()
def db_session():
    """Fresh schema per test; the session is for seeding and inspecting rows."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session):
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def register(client, username, email=None, password=PASSWORD):
    email = email or f"{username}@gmail.com"
    return client.post("/api/register", json={"username": username, "email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(client):
    def _make_user(username):
        response = register(client, username)
        assert response.status_code == 201, response.text
        return bearer(response.json()["token"])
    return _make_user


@pytest.fixture()
def alice(make_user):
    return make_user("alice")


@pytest.fixture()
def bob(make_user):
    return make_user("bob")


@pytest.fixture()
def admin(make_user, db_session):
    headers = make_user("root_admin")
    crud.promote_admin(db_session, "root_admin@gmail.com")
    return headers
