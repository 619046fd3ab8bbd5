"""
Ledger Families
===============
Request shapes and capabilities that differ between base (NNS) and
suite (SNS) governance. NeuronOps holds one of these and never
branches on the family name itself.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..errors import InvalidArgument, RemoteReject
from ..wallet import Principal, account_identifier, neuron_subaccount
from .types import (
    DEFAULT_HOTKEY_PERMISSIONS,
    LedgerFamily,
    NeuronId,
    NeuronPermission,
    NeuronRef,
    Visibility,
    parse_dissolve_state,
)


@dataclass(frozen=True)
class GovernanceParameters:
    """Values neuron creation and voting need from the remote service."""
    neuron_minimum_stake_e8s: int
    max_dissolve_delay_seconds: int
    minimum_dissolve_delay_to_vote_seconds: int = 0


class NeuronFamily:
    """Common shape; subclasses fill in the asymmetries."""

    family: LedgerFamily
    supports_visibility: bool = False
    uses_permissions: bool = False
    lists_by_caller: bool = False
    can_mint_by_proposal: bool = False
    parameters_method: str = ""
    proposal_method: str = ""

    def __init__(self, governance_id: str, ledger_id: str):
        self.governance_id = governance_id
        self.ledger_id = ledger_id

    @property
    def governance_principal(self) -> Principal:
        return Principal.from_text(self.governance_id)

    def configure(self, neuron_id: NeuronId, operation: dict) -> dict:
        return self.manage_arg(neuron_id, {"Configure": {"operation": operation}})

    def manage_arg(self, neuron_id: NeuronId, command: dict) -> dict:
        raise NotImplementedError

    def claim_arg(self, controller: Principal, memo: int) -> dict:
        raise NotImplementedError

    def parse_neuron(self, raw: dict, now: Optional[float] = None) -> NeuronRef:
        raise NotImplementedError

    def parse_parameters(self, raw: dict) -> GovernanceParameters:
        raise NotImplementedError

    @staticmethod
    def claimed_id(reply: dict) -> NeuronId:
        return reply["refreshed_neuron_id"]["id"]


class BaseFamily(NeuronFamily):
    """NNS governance + ICP ledger."""

    family = LedgerFamily.BASE
    supports_visibility = True
    lists_by_caller = True
    parameters_method = "get_network_economics_parameters"

    def manage_arg(self, neuron_id: Optional[NeuronId], command: dict) -> dict:
        return {
            "id": {"id": neuron_id} if neuron_id is not None else None,
            "neuron_id_or_subaccount": None,
            "command": command,
        }

    def claim_arg(self, controller: Principal, memo: int) -> dict:
        return self.manage_arg(None, {"ClaimOrRefresh": {"by": {"Memo": memo}}})

    def hotkey_command(
        self, neuron_id: NeuronId, hotkey: Principal, permissions: Optional[Iterable[int]]
    ) -> dict:
        if permissions is not None:
            raise InvalidArgument("Base neurons take plain hotkeys; permissions are not supported")
        return self.configure(neuron_id, {"AddHotKey": {"new_hot_key": str(hotkey)}})

    def disburse_command(
        self,
        neuron_id: NeuronId,
        receiver: Principal,
        subaccount: Optional[bytes],
        amount: Optional[int],
    ) -> dict:
        return self.manage_arg(neuron_id, {
            "Disburse": {
                "to_account": {"hash": account_identifier(receiver, subaccount).hex()},
                "amount": {"e8s": amount} if amount is not None else None,
            }
        })

    def visibility_command(self, neuron_id: NeuronId, public: bool) -> dict:
        visibility = Visibility.PUBLIC if public else Visibility.PRIVATE
        return self.configure(neuron_id, {"SetVisibility": {"visibility": int(visibility)}})

    def list_arg(self) -> dict:
        return {
            "neuron_ids": [],
            "include_neurons_readable_by_caller": True,
            "include_empty_neurons_readable_by_caller": False,
            "include_public_neurons_in_full_neurons": False,
        }

    def parse_neuron(self, raw: dict, now: Optional[float] = None) -> NeuronRef:
        state, delay = parse_dissolve_state(raw.get("dissolve_state"), now)
        visibility = raw.get("visibility")
        return NeuronRef(
            family=self.family,
            id=int(raw["id"]["id"]),
            stake_e8s=int(raw.get("cached_neuron_stake_e8s", 0)),
            dissolve_state=state,
            dissolve_delay_seconds=delay,
            controller=raw.get("controller"),
            hotkeys=list(raw.get("hot_keys", [])),
            visibility=Visibility(visibility) if visibility is not None else None,
        )

    def parse_parameters(self, raw: dict) -> GovernanceParameters:
        return GovernanceParameters(
            neuron_minimum_stake_e8s=int(raw["neuron_minimum_stake_e8s"]),
            max_dissolve_delay_seconds=int(raw["neuron_maximum_dissolve_delay_seconds"]),
        )


class SuiteFamily(NeuronFamily):
    """SNS governance + SNS ledger of one deployed suite."""

    family = LedgerFamily.SUITE
    uses_permissions = True
    can_mint_by_proposal = True
    parameters_method = "get_nervous_system_parameters"
    proposal_method = "get_proposal"

    def manage_arg(self, neuron_id: NeuronId, command: dict) -> dict:
        return {"subaccount": neuron_id, "command": command}

    def claim_arg(self, controller: Principal, memo: int) -> dict:
        return self.manage_arg(
            neuron_subaccount(controller, memo).hex(),
            {"ClaimOrRefresh": {"by": {"MemoAndController": {
                "memo": memo,
                "controller": str(controller),
            }}}},
        )

    def hotkey_command(
        self, neuron_id: NeuronId, hotkey: Principal, permissions: Optional[Iterable[int]]
    ) -> dict:
        if permissions is None:
            permissions = DEFAULT_HOTKEY_PERMISSIONS
        return self.manage_arg(neuron_id, {
            "AddNeuronPermissions": {
                "principal_id": str(hotkey),
                "permissions_to_add": {"permissions": [int(p) for p in permissions]},
            }
        })

    def disburse_command(
        self,
        neuron_id: NeuronId,
        receiver: Principal,
        subaccount: Optional[bytes],
        amount: Optional[int],
    ) -> dict:
        return self.manage_arg(neuron_id, {
            "Disburse": {
                "to_account": {
                    "owner": str(receiver),
                    "subaccount": subaccount.hex() if subaccount is not None else None,
                },
                "amount": {"e8s": amount} if amount is not None else None,
            }
        })

    def list_arg(self, principal: Principal, start_page_at: Optional[str] = None,
                 limit: int = 100) -> dict:
        return {
            "of_principal": str(principal),
            "limit": limit,
            "start_page_at": {"id": start_page_at} if start_page_at else None,
        }

    def parse_neuron(self, raw: dict, now: Optional[float] = None) -> NeuronRef:
        state, delay = parse_dissolve_state(raw.get("dissolve_state"), now)
        permissions = {
            p["principal"]: [int(t) for t in p.get("permission_type", [])]
            for p in raw.get("permissions", [])
        }
        return NeuronRef(
            family=self.family,
            id=raw["id"]["id"],
            stake_e8s=int(raw.get("cached_neuron_stake_e8s", 0)),
            dissolve_state=state,
            dissolve_delay_seconds=delay,
            controller=_controller_of(permissions),
            permissions=permissions,
        )

    def parse_parameters(self, raw: dict) -> GovernanceParameters:
        return GovernanceParameters(
            neuron_minimum_stake_e8s=int(raw["neuron_minimum_stake_e8s"]),
            max_dissolve_delay_seconds=int(raw["max_dissolve_delay_seconds"]),
            minimum_dissolve_delay_to_vote_seconds=int(
                raw.get("neuron_minimum_dissolve_delay_to_vote_seconds") or 0
            ),
        )

    def proposal_arg(self, proposal_id: int) -> dict:
        return {"proposal_id": {"id": proposal_id}}


def _controller_of(permissions: dict) -> Optional[str]:
    """The principal holding MANAGE_PRINCIPALS, if any."""
    for principal, granted in permissions.items():
        if NeuronPermission.MANAGE_PRINCIPALS in granted:
            return principal
    return None


def unwrap_command(reply: dict, expected: str, method: str = "manage_neuron") -> dict:
    """
    Unwrap {"command": {expected: {...}}}.

    {"command": {"Error": {...}}} and replies of any other shape are
    RemoteRejects carrying the remote message verbatim.
    """
    command = (reply or {}).get("command") or {}
    if "Error" in command:
        error = command["Error"] or {}
        raise RemoteReject(error.get("error_message") or str(error), method=method,
                           code=error.get("error_type"))
    if expected not in command:
        raise RemoteReject(f"Unexpected {method} reply: {reply}", method=method)
    return command[expected] or {}
