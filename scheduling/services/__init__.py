"""
Services Module Initialization

Exports the scheduling engine components.
"""

from scheduling.services.availability import AvailabilityCalculator, slot_grid
from scheduling.services.booking import BookingStateMachine, effective_status, is_past
from scheduling.services.facade import BookingFlow, FlowState, SchedulingFacade, SweepReport
from scheduling.services.waitlist import WaitlistOrchestrator

__all__ = [
    "AvailabilityCalculator",
    "slot_grid",
    "BookingStateMachine",
    "effective_status",
    "is_past",
    "BookingFlow",
    "FlowState",
    "SchedulingFacade",
    "SweepReport",
    "WaitlistOrchestrator",
]
