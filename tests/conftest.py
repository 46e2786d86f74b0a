"""Pytest fixtures shared across the test suite."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salesadmin.auth import hash_password
from salesadmin.database import Base, get_db
from salesadmin.main import app
from salesadmin.models import (
    App,
    AppPlatform,
    AppPlatformLink,
    AppType,
    Event,
    EventAppPlatform,
    EventVisibility,
    ParticipationStatus,
    Platform,
    PlatformType,
    Studio,
    StudioMember,
    User,
    UserRole,
)

PASSWORD = "correct-horse"


class Factory:
    """Small helpers to put rows into the test database."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, name="Dana", email=None, role=UserRole.User, password=PASSWORD):
        email = email or f"{name.lower()}@example.com"
        return self._save(User(name=name, email=email, role=role, password_hash=hash_password(password)))

    def studio(self, name="Pixel Forge", comment=None):
        return self._save(Studio(name=name, comment=comment))

    def member(self, studio, user, position=None, main_contact=False):
        member = self._save(StudioMember(studio_id=studio.id, user_id=user.id, position=position))
        if main_contact:
            studio.main_contact_id = member.id
            self.db.commit()
        return member

    def platform(self, name="Steam", type=PlatformType.Steam):
        return self._save(Platform(name=name, type=type))

    def app(self, name, studio, type=AppType.Game):
        return self._save(App(name=name, studio_id=studio.id, type=type))

    def app_platform(self, app, platform, links=(), **fields):
        app_platform = AppPlatform(app_id=app.id, platform_id=platform.id, **fields)
        app_platform.links = [AppPlatformLink(url=url, title=title) for url, title in links]
        return self._save(app_platform)

    def event(self, name="Summer Sale", visibility=EventVisibility.Private):
        return self._save(
            Event(
                name=name,
                running_from=datetime(2024, 6, 1),
                running_to=datetime(2024, 6, 14),
                visibility=visibility,
            )
        )

    def participation(self, event, app_platform, status=ParticipationStatus.OK_Confirmed, comment=None):
        return self._save(
            EventAppPlatform(
                event_id=event.id,
                app_platform_id=app_platform.id,
                status=status,
                comment=comment,
            )
        )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def login(client, email, password=PASSWORD):
    return client.post(
        "/login",
        data={"email": email, "password": password, "redirect_to": ""},
        follow_redirects=False,
    )


@pytest.fixture
def admin(factory):
    return factory.user(name="Alex", email="alex@example.com", role=UserRole.Admin)


@pytest.fixture
def admin_client(client, admin):
    response = login(client, admin.email)
    assert response.status_code == 303
    return client


@pytest.fixture
def user_client(client, factory):
    user = factory.user(name="Robin", email="robin@example.com", role=UserRole.Developer)
    response = login(client, user.email)
    assert response.status_code == 303
    return client
