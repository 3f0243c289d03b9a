import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Table,
    Integer,
    JSON,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


# Association table for many-to-many Trip<->User (trip admins)
trip_admins = Table(
    "trip_admins",
    Base.metadata,
    Column("trip_id", Uuid(as_uuid=True), ForeignKey("trips.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("trip_id", "user_id", name="uq_trip_admin"),
)


class Family(Base):
    __tablename__ = "families"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    members = relationship("User", back_populates="family")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="FAMILY")  # FAMILY|TRIP_ADMIN|SUPER_ADMIN
    family_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("families.id", ondelete="SET NULL"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    family = relationship("Family", back_populates="members")
    administered_trips = relationship("Trip", secondary=trip_admins, back_populates="admins")


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    draft: Mapped[bool] = mapped_column(Boolean, default=True)  # Drafts are visible to admins only
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    admins = relationship("User", secondary=trip_admins, back_populates="administered_trips")
    attendance = relationship("TripAttendance", back_populates="trip", cascade="all, delete-orphan")
    gear_items = relationship("GearItem", back_populates="trip", cascade="all, delete-orphan")


class TripAttendance(Base):
    """Families registered as attending a trip"""
    __tablename__ = "trip_attendance"

    id: Mapped[uuid.UUID] = uuid_pk()
    trip_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    family_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    trip = relationship("Trip", back_populates="attendance")
    family = relationship("Family")

    __table_args__ = (
        UniqueConstraint("trip_id", "family_id", name="uq_trip_attendance_family"),
    )


class GearItem(Base):
    """A category of shared equipment with a fixed required quantity for one trip"""
    __tablename__ = "gear_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    trip_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_needed: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    trip = relationship("Trip", back_populates="gear_items")
    assignments = relationship(
        "GearAssignment",
        back_populates="gear_item",
        cascade="all, delete-orphan",
        order_by="GearAssignment.created_at",
    )

    __table_args__ = (
        CheckConstraint("quantity_needed >= 1", name="ck_gear_item_quantity_needed"),
    )


class GearAssignment(Base):
    """One family's committed quantity toward a gear item"""
    __tablename__ = "gear_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    gear_item_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("gear_items.id", ondelete="CASCADE"), nullable=False, index=True)
    family_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity_assigned: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    gear_item = relationship("GearItem", back_populates="assignments")
    family = relationship("Family", lazy="joined")

    __table_args__ = (
        UniqueConstraint("gear_item_id", "family_id", name="uq_gear_assignment_item_family"),
        CheckConstraint("quantity_assigned >= 1", name="ck_gear_assignment_quantity"),
    )


class AuditLog(Base):
    """Append-only audit log for gear actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # gear_item|gear_assignment
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|DELETE
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)  # {trip_id, gear_item_id, family_id}
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )
