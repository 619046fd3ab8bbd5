"""
Neurons
=======
Neuron operations on base (NNS) and suite (SNS) governance.

Flow for a new neuron:
1. Transfer stake to the governance subaccount for (controller, memo)
2. Claim it by memo
3. Optionally raise its dissolve delay
"""

from .families import BaseFamily, GovernanceParameters, NeuronFamily, SuiteFamily
from .ops import NeuronOps
from .types import (
    DEFAULT_HOTKEY_PERMISSIONS,
    DissolveState,
    LedgerFamily,
    NeuronPermission,
    NeuronRef,
    Proposal,
    ProposalKind,
    ProposalOutcome,
    Visibility,
    parse_neuron_id,
    parse_permissions,
    parse_proposal_outcome,
    sort_neurons,
)

__all__ = [
    "BaseFamily",
    "SuiteFamily",
    "NeuronFamily",
    "GovernanceParameters",
    "NeuronOps",
    "DEFAULT_HOTKEY_PERMISSIONS",
    "DissolveState",
    "LedgerFamily",
    "NeuronPermission",
    "NeuronRef",
    "Proposal",
    "ProposalKind",
    "ProposalOutcome",
    "Visibility",
    "parse_neuron_id",
    "parse_permissions",
    "parse_proposal_outcome",
    "sort_neurons",
]
