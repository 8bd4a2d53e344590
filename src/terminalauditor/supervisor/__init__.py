"""Supervisor state machine and its event interface."""

from .machine import (
    RESOLVE_MESSAGE,
    Supervisor,
    format_interrupt_message,
)
from .models import (
    ALERT,
    INJECT,
    INTERRUPT,
    MONITORING,
    RECALIBRATE,
    ApprovalRequest,
    CompositeListener,
    SupervisorListener,
)

__all__ = [
    "ALERT",
    "INJECT",
    "INTERRUPT",
    "MONITORING",
    "RECALIBRATE",
    "RESOLVE_MESSAGE",
    "ApprovalRequest",
    "CompositeListener",
    "Supervisor",
    "SupervisorListener",
    "format_interrupt_message",
]
