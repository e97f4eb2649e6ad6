"""
Database Tables

SQLAlchemy models for appointments, employee slot claims and waitlist requests.
"""

from sqlalchemy import Column, Date, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class AppointmentRow(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_user_status_scheduled", "user_id", "status", "scheduled_at"),
        Index("ix_appointments_employee_scheduled", "venue_id", "employee_id", "scheduled_at"),
    )

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False)
    venue_id = Column(String(64), nullable=False)
    venue_name = Column(String(255), nullable=False)
    service_id = Column(String(64), nullable=False)
    service_name = Column(String(255), nullable=False)
    employee_id = Column(String(64), nullable=False)
    employee_name = Column(String(255), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(16), nullable=False, default="UPCOMING")  # UPCOMING | COMPLETED | CANCELLED
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class SlotClaimRow(Base):
    """One occupancy block of an employee. The primary key is the conditional-write guard."""

    __tablename__ = "slot_claims"

    venue_id = Column(String(64), primary_key=True)
    employee_id = Column(String(64), primary_key=True)
    block_start = Column(DateTime(timezone=True), primary_key=True)
    appointment_id = Column(String(64), nullable=False, index=True)
    interval_start = Column(DateTime(timezone=True), nullable=False)


class WaitlistRequestRow(Base):
    __tablename__ = "waitlist_requests"
    __table_args__ = (
        Index("ix_waitlist_venue_service_date", "venue_id", "service_id", "preferred_date"),
    )

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    venue_id = Column(String(64), nullable=False)
    service_id = Column(String(64), nullable=False)
    preferred_date = Column(Date, nullable=False)
    preferred_time_range = Column(String(16), nullable=False, default="ANY")
    status = Column(String(16), nullable=False, default="PENDING", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    appointment_id = Column(String(64), nullable=True)
