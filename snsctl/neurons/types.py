"""
Neuron Types
============
Data structures shared by base and suite neurons.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Union

from ..errors import InvalidArgument

NeuronId = Union[int, str]  # base: integer, suite: hex subaccount


class LedgerFamily(Enum):
    """Which governance/ledger pair a neuron lives on."""
    BASE = "base"     # ICP ledger + NNS governance
    SUITE = "suite"   # SNS ledger + SNS governance

    @classmethod
    def parse(cls, value: str) -> "LedgerFamily":
        aliases = {"base": cls.BASE, "icp": cls.BASE, "nns": cls.BASE,
                   "suite": cls.SUITE, "sns": cls.SUITE}
        try:
            return aliases[value.lower()]
        except KeyError:
            raise InvalidArgument(f"Unknown ledger family {value!r} (use base or suite)")


class DissolveState(Enum):
    NOT_DISSOLVING = "not_dissolving"
    DISSOLVING = "dissolving"
    DISSOLVED = "dissolved"


class NeuronPermission(IntEnum):
    """Suite governance NeuronPermissionType values."""
    UNSPECIFIED = 0
    CONFIGURE_DISSOLVE_STATE = 1
    MANAGE_PRINCIPALS = 2
    SUBMIT_PROPOSAL = 3
    VOTE = 4
    DISBURSE = 5
    SPLIT = 6
    MERGE_MATURITY = 7
    DISBURSE_MATURITY = 8
    STAKE_MATURITY = 9
    MANAGE_VOTING_PERMISSION = 10


DEFAULT_HOTKEY_PERMISSIONS = (NeuronPermission.SUBMIT_PROPOSAL, NeuronPermission.VOTE)


class Visibility(IntEnum):
    """Base neuron visibility."""
    UNSPECIFIED = 0
    PRIVATE = 1
    PUBLIC = 2


class ProposalKind(Enum):
    CREATE_SUITE = "create_suite"
    MINT_TOKENS = "mint_tokens"


class ProposalOutcome(Enum):
    PENDING = "pending"
    ADOPTED = "adopted"
    REJECTED = "rejected"
    EXECUTED = "executed"


@dataclass
class Proposal:
    id: int
    kind: ProposalKind
    proposer: NeuronId
    outcome: ProposalOutcome = ProposalOutcome.PENDING


@dataclass
class NeuronRef:
    """
    Snapshot of a neuron as the governance service reported it.

    The remote service owns the state; nothing here is written back.
    """
    family: LedgerFamily
    id: NeuronId
    stake_e8s: int
    dissolve_state: Optional[DissolveState]
    dissolve_delay_seconds: Optional[int]
    controller: Optional[str] = None
    hotkeys: List[str] = field(default_factory=list)
    permissions: Dict[str, List[int]] = field(default_factory=dict)
    visibility: Optional[Visibility] = None

    @property
    def sort_delay(self) -> float:
        """Dissolve delay for ordering: dissolving counts as 0, unknown sorts last."""
        if self.dissolve_state is None:
            return float("inf")
        if self.dissolve_state is DissolveState.NOT_DISSOLVING:
            return self.dissolve_delay_seconds or 0
        return 0

    def display_id(self) -> str:
        return str(self.id)


def parse_dissolve_state(raw: Optional[dict], now: Optional[float] = None):
    """
    Map the remote dissolve_state variant to (DissolveState, delay seconds).

    {"DissolveDelaySeconds": n}          -> NOT_DISSOLVING, n
    {"WhenDissolvedTimestampSeconds": t} -> DISSOLVING, t - now (or DISSOLVED, 0)
    """
    if not raw:
        return None, None
    if "DissolveDelaySeconds" in raw:
        return DissolveState.NOT_DISSOLVING, int(raw["DissolveDelaySeconds"])
    if "WhenDissolvedTimestampSeconds" in raw:
        now = time.time() if now is None else now
        remaining = int(raw["WhenDissolvedTimestampSeconds"] - now)
        if remaining > 0:
            return DissolveState.DISSOLVING, remaining
        return DissolveState.DISSOLVED, 0
    return None, None


def parse_proposal_outcome(data: dict) -> ProposalOutcome:
    """
    Map suite ProposalData to an outcome.

    Undecided -> PENDING; executed -> EXECUTED; decided with more yes
    than no -> ADOPTED (execution pending or failed); otherwise REJECTED.
    """
    if not data.get("decided_timestamp_seconds"):
        return ProposalOutcome.PENDING
    if data.get("executed_timestamp_seconds"):
        return ProposalOutcome.EXECUTED
    tally = data.get("latest_tally") or {}
    if int(tally.get("yes") or 0) > int(tally.get("no") or 0):
        return ProposalOutcome.ADOPTED
    return ProposalOutcome.REJECTED


def sort_neurons(neurons: List[NeuronRef]) -> List[NeuronRef]:
    """Dissolve delay ascending, then stake descending."""
    return sorted(neurons, key=lambda n: (n.sort_delay, -n.stake_e8s))


def parse_permissions(text: Optional[str]) -> Optional[List[NeuronPermission]]:
    """
    Parse "3,4" into permission values. None or "" means "use defaults".
    """
    if text is None or not text.strip():
        return None
    permissions = []
    for part in text.split(","):
        part = part.strip()
        try:
            permissions.append(NeuronPermission(int(part)))
        except ValueError:
            raise InvalidArgument(
                f"Invalid permission {part!r}: expected a number between 0 and "
                f"{max(NeuronPermission)}"
            )
    return permissions


def parse_neuron_id(family: LedgerFamily, text: str) -> NeuronId:
    """Base ids are decimal integers, suite ids hex subaccounts (optional 0x)."""
    text = text.strip()
    if family is LedgerFamily.BASE:
        if not text.isdigit():
            raise InvalidArgument(f"Base neuron id must be a decimal integer, got {text!r}")
        return int(text)

    hex_id = text.removeprefix("0x").lower()
    try:
        raw = bytes.fromhex(hex_id)
    except ValueError:
        raise InvalidArgument(f"Suite neuron id must be hex, got {text!r}")
    if len(raw) != 32:
        raise InvalidArgument(f"Suite neuron id must be 32 bytes, got {len(raw)}")
    return hex_id
