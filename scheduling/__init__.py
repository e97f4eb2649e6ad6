"""
Salon Scheduling

Appointment scheduling and availability engine for beauty/salon bookings.
"""

__version__ = "0.1.0"
