"""
Swap
====
Participation in a suite's decentralization swap.
"""

from .engine import SwapParticipationEngine
from .types import (
    DerivedState,
    ParticipantState,
    SwapLifecycle,
    SwapParticipant,
    SwapStatus,
    Ticket,
)

__all__ = [
    "SwapParticipationEngine",
    "DerivedState",
    "ParticipantState",
    "SwapLifecycle",
    "SwapParticipant",
    "SwapStatus",
    "Ticket",
]
