"""Shared pytest fixtures for gear service tests."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Settings are read at import time; point them at throwaway values first
_TMP_DIR = tempfile.mkdtemp(prefix="tripgear-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/app.db"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT"] = "10000/minute"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tripgear.auth.security import create_access_token
from tripgear.db import Base, get_db
from tripgear.models.models import Family, Trip, TripAttendance, User
from tripgear.services.gear_repository import GearRepository
from tripgear.services.gear_service import GearService, ItemLocks
from tripgear.services.permissions import Actor, Role
from tripgear.services.trip_gate import TripGate


class FrozenClock:
    """Controllable clock for temporal rules."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_actor(user: User) -> Actor:
    return Actor(id=user.id, role=Role(user.role), family_id=user.family_id)


def _make_family(db, name: str) -> Family:
    family = Family(name=name)
    db.add(family)
    db.flush()
    return family


def _make_user(db, email: str, role: Role, family: Family = None) -> User:
    user = User(email=email, role=role.value, family_id=family.id if family else None)
    db.add(user)
    db.flush()
    return user


@pytest.fixture()
def world(db):
    """
    A published trip starting in 30 days with:
    - admin: TRIP_ADMIN of the trip (own family attending)
    - other_admin: TRIP_ADMIN of a different trip
    - root: SUPER_ADMIN without a family
    - family_a / family_b: attending families with one FAMILY user each
    - family_c: a family that is not attending
    """
    start = datetime.now(timezone.utc) + timedelta(days=30)

    admin_family = _make_family(db, "Admins")
    family_a = _make_family(db, "Alvarez")
    family_b = _make_family(db, "Brooks")
    family_c = _make_family(db, "Chen")

    admin = _make_user(db, "admin@example.com", Role.TRIP_ADMIN, admin_family)
    other_admin = _make_user(db, "other-admin@example.com", Role.TRIP_ADMIN)
    root = _make_user(db, "root@example.com", Role.SUPER_ADMIN)
    user_a = _make_user(db, "a@example.com", Role.FAMILY, family_a)
    user_b = _make_user(db, "b@example.com", Role.FAMILY, family_b)
    user_c = _make_user(db, "c@example.com", Role.FAMILY, family_c)

    trip = Trip(name="Lake Camp", start_date=start, end_date=start + timedelta(days=3), draft=False)
    trip.admins.append(admin)
    other_trip = Trip(name="Coast Hike", start_date=start, draft=False)
    other_trip.admins.append(other_admin)
    db.add_all([trip, other_trip])
    db.flush()

    for family in (admin_family, family_a, family_b):
        db.add(TripAttendance(trip_id=trip.id, family_id=family.id))
    db.commit()

    return SimpleNamespace(
        start=start,
        trip=trip,
        other_trip=other_trip,
        admin_family=admin_family,
        family_a=family_a,
        family_b=family_b,
        family_c=family_c,
        admin=admin,
        other_admin=other_admin,
        root=root,
        user_a=user_a,
        user_b=user_b,
        user_c=user_c,
    )


@pytest.fixture()
def clock(world):
    return FrozenClock(world.start - timedelta(days=1))


@pytest.fixture()
def service(db, clock):
    return GearService(GearRepository(db), TripGate(db), locks=ItemLocks(), clock=clock)


@pytest.fixture()
def actors(world):
    return SimpleNamespace(
        admin=make_actor(world.admin),
        other_admin=make_actor(world.other_admin),
        root=make_actor(world.root),
        a=make_actor(world.user_a),
        b=make_actor(world.user_b),
        c=make_actor(world.user_c),
    )


@pytest.fixture()
def make_item(service, world, actors):
    def _make(name: str = "Tent", quantity_needed: int = 5, trip=None):
        return service.create_item((trip or world.trip).id, name, quantity_needed, actors.admin)

    return _make


@pytest.fixture()
def client(session_factory):
    from tripgear.main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}

    return _headers
