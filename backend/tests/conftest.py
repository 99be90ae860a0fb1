import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
import models
from database import get_db, init_admin
from main import app, get_store
from store import Store

ADMIN_EMAIL = "admin@canteen.test"
ADMIN_PASSWORD = "admin-pass"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return Store(db)


@pytest.fixture
def make_client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    def factory():
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def admin(session_factory):
    session = session_factory()
    try:
        user = init_admin(session, ADMIN_EMAIL, ADMIN_PASSWORD)
        return user.id
    finally:
        session.close()


@pytest.fixture
def admin_client(make_client, admin):
    client = make_client()
    response = client.post("/sessions", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def user_client(make_client):
    client = make_client()
    register_and_login(client, "user@canteen.test", "user-pass")
    return client


@pytest.fixture
def menu_items(session_factory):
    """Three menu items, returned as {name: (id, price)}."""
    session = session_factory()
    try:
        items = [
            models.MenuItem(name="Borscht", price=120, description="Beet soup"),
            models.MenuItem(name="Pelmeni", price=250, description=""),
            models.MenuItem(name="Kompot", price=0, description="On the house"),
        ]
        session.add_all(items)
        session.commit()
        return {item.name: (item.id, item.price) for item in items}
    finally:
        session.close()


@pytest.fixture
def override_store():
    """Install a get_store override built by ``build(db) -> Store``."""
    def install(build):
        def _get_store(db=Depends(get_db)):
            return build(db)

        app.dependency_overrides[get_store] = _get_store

    return install


def register_and_login(client, email, password):
    response = client.post("/users", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    response = client.post("/sessions", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    assert auth.SESSION_COOKIE_NAME in response.cookies
    return response.json()


class FaultySession:
    """Delegates to a real session, except that the named methods raise
    OperationalError as if the database had gone away."""

    def __init__(self, db, *failing):
        self._db = db
        self._failing = set(failing)

    def __getattr__(self, name):
        if name in self._failing:
            def fail(*args, **kwargs):
                raise OperationalError(name, {}, Exception("database is unavailable"))
            return fail
        return getattr(self._db, name)
