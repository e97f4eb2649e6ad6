"""
Database Module Initialization

Exports store implementations and session helpers.
"""

from scheduling.db.interfaces import AppointmentStore, WaitlistStore, occupancy_blocks
from scheduling.db.memory import InMemoryAppointmentStore, InMemoryWaitlistStore
from scheduling.db.repository import AppointmentRepository, DatabaseError, WaitlistRepository

__all__ = [
    "AppointmentStore",
    "WaitlistStore",
    "occupancy_blocks",
    "InMemoryAppointmentStore",
    "InMemoryWaitlistStore",
    "AppointmentRepository",
    "WaitlistRepository",
    "DatabaseError",
]
