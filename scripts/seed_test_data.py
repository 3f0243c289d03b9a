"""
Seed the local database with a demo trip, families, users and gear.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (email for users, name for families, trips
and gear items).
"""

from datetime import datetime, timedelta, timezone

from tripgear.auth.security import create_access_token
from tripgear.db import SessionLocal, Base, engine
from tripgear.models.models import (
    Family,
    User,
    Trip,
    TripAttendance,
    GearItem,
)
from tripgear.services.permissions import Role


def ensure_family(session, name: str) -> Family:
    family = session.query(Family).filter(Family.name == name).first()
    if family:
        return family
    family = Family(name=name)
    session.add(family)
    session.flush()
    return family


def ensure_user(session, email: str, role: Role, family: Family | None = None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        # Keep role and family in sync with the seed definition
        user.role = role.value
        user.family_id = family.id if family else None
        user.is_active = True
        session.add(user)
        session.flush()
        return user
    user = User(
        email=email,
        role=role.value,
        family_id=family.id if family else None,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    session.add(user)
    session.flush()
    return user


def ensure_trip(session, name: str, start_date: datetime, admins: list[User], draft: bool = False) -> Trip:
    trip = session.query(Trip).filter(Trip.name == name).first()
    if not trip:
        trip = Trip(name=name, start_date=start_date, end_date=start_date + timedelta(days=3))
        session.add(trip)
    trip.draft = draft
    for admin in admins:
        if admin not in trip.admins:
            trip.admins.append(admin)
    session.flush()
    return trip


def ensure_attendance(session, trip: Trip, family: Family) -> TripAttendance:
    row = (
        session.query(TripAttendance)
        .filter(TripAttendance.trip_id == trip.id, TripAttendance.family_id == family.id)
        .first()
    )
    if row:
        return row
    row = TripAttendance(trip_id=trip.id, family_id=family.id)
    session.add(row)
    session.flush()
    return row


def ensure_gear_item(session, trip: Trip, name: str, quantity_needed: int) -> GearItem:
    item = (
        session.query(GearItem)
        .filter(GearItem.trip_id == trip.id, GearItem.name == name)
        .first()
    )
    if item:
        # Never shrink below what families already committed
        committed = sum(a.quantity_assigned for a in item.assignments)
        item.quantity_needed = max(quantity_needed, committed)
        session.flush()
        return item
    item = GearItem(trip_id=trip.id, name=name, quantity_needed=quantity_needed)
    session.add(item)
    session.flush()
    return item


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        # Families
        alvarez = ensure_family(session, "Alvarez")
        brooks = ensure_family(session, "Brooks")
        organizers = ensure_family(session, "Organizers")

        # Users, one per role
        root = ensure_user(session, "root@example.com", Role.SUPER_ADMIN)
        admin = ensure_user(session, "organizer@example.com", Role.TRIP_ADMIN, organizers)
        ana = ensure_user(session, "ana.alvarez@example.com", Role.FAMILY, alvarez)
        ben = ensure_user(session, "ben.brooks@example.com", Role.FAMILY, brooks)

        # Trip starting in two weeks
        start = datetime.now(timezone.utc).replace(hour=8, minute=0, second=0, microsecond=0) + timedelta(days=14)
        trip = ensure_trip(session, "Lake Camp", start, admins=[admin])
        for family in (alvarez, brooks, organizers):
            ensure_attendance(session, trip, family)

        # Gear
        ensure_gear_item(session, trip, "Tent", 5)
        ensure_gear_item(session, trip, "Camp stove", 2)
        ensure_gear_item(session, trip, "Cooler", 3)

        # Commit all changes
        session.commit()
        print(f"Seed completed: trip {trip.id} with families and gear upserted.")
        for user in (root, admin, ana, ben):
            print(f"{user.email} ({user.role}): {create_access_token(str(user.id))}")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
