"""
Swap Types
==========
Data structures for swap participation.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

from ..errors import InconsistentState
from ..identity import Identity


class SwapLifecycle(IntEnum):
    """Swap lifecycle as the swap service reports it. Read-only here."""
    UNSPECIFIED = 0
    PENDING = 1
    OPEN = 2
    COMMITTED = 3
    ABORTED = 4
    ADOPTED = 5


class ParticipantState(Enum):
    PENDING = "pending"           # nothing done yet
    TICKETED = "ticketed"         # sale ticket held
    TRANSFERRED = "transferred"   # funds sent to the swap
    CONFIRMED = "confirmed"       # swap acknowledged the funds


def _lifecycle(value) -> SwapLifecycle:
    try:
        return SwapLifecycle(int(value or 0))
    except (TypeError, ValueError):
        raise InconsistentState(f"Swap reported an unknown lifecycle {value!r}") from None


@dataclass
class SwapStatus:
    lifecycle: SwapLifecycle
    open_timestamp_seconds: Optional[int] = None
    termination_timestamp_seconds: Optional[int] = None

    @classmethod
    def from_reply(cls, reply: dict) -> "SwapStatus":
        return cls(
            lifecycle=_lifecycle(reply.get("lifecycle")),
            open_timestamp_seconds=reply.get("decentralization_sale_open_timestamp_seconds"),
            termination_timestamp_seconds=reply.get(
                "decentralization_swap_termination_timestamp_seconds"
            ),
        )


@dataclass
class DerivedState:
    direct_participant_count: int
    direct_participation_e8s: int

    @classmethod
    def from_reply(cls, reply: dict) -> "DerivedState":
        direct = reply.get("direct_participation_icp_e8s")
        if direct is None:
            direct = reply.get("buyer_total_icp_e8s", 0)
        return cls(
            direct_participant_count=int(reply.get("direct_participant_count") or 0),
            direct_participation_e8s=int(direct or 0),
        )


@dataclass
class Ticket:
    ticket_id: int
    amount_e8s: int
    creation_time: Optional[int] = None

    @classmethod
    def from_reply(cls, raw: dict) -> "Ticket":
        return cls(
            ticket_id=int(raw["ticket_id"]),
            amount_e8s=int(raw["amount_icp_e8s"]),
            creation_time=raw.get("creation_time"),
        )


@dataclass
class SwapParticipant:
    """One buyer's progress through ticket, transfer and refresh."""
    identity: Identity
    committed_e8s: int = 0
    ticket_id: Optional[int] = None
    state: ParticipantState = ParticipantState.PENDING

    @property
    def principal(self):
        return self.identity.principal
