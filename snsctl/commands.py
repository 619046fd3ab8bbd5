"""
Commands
========
Everything snsctl can do, with defaults resolved the way an operator expects:

- base commands act as the owner unless a principal is named
- suite commands act as the first participant of the deployment record
- a missing neuron id means the principal's default neuron

Arguments are validated before any network call.
"""

import logging
from typing import List, Optional

from .config import Config
from .deployer import SnsDeployer
from .errors import InconsistentState, InvalidArgument
from .identity import Identity, IdentityManager
from .neurons import (
    BaseFamily,
    LedgerFamily,
    NeuronOps,
    NeuronRef,
    SuiteFamily,
    parse_neuron_id,
)
from .neurons.types import NeuronId
from .records import DeploymentRecord, load_record, try_load_record
from .rpc import Network
from .sns_config import load_logo, load_parameters
from .wallet import Principal, parse_subaccount

logger = logging.getLogger(__name__)


def _positive(name: str, value: Optional[int]) -> None:
    if value is not None and value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")


class Commands:
    """
    Command surface over one Network.

    Usage:
        async with Network(config) as network:
            commands = Commands(config, network)
            neurons = await commands.list_neurons(LedgerFamily.BASE)
    """

    def __init__(
        self,
        config: Config,
        network: Network,
        identities: Optional[IdentityManager] = None,
    ):
        self.config = config
        self.network = network
        self.identities = identities or IdentityManager(config)
        self._record: Optional[DeploymentRecord] = None

    # ============================================================
    # Resolution helpers
    # ============================================================

    def record(self) -> DeploymentRecord:
        if self._record is None:
            self._record = load_record(self.config.record_path)
        return self._record

    def ops(self, family: LedgerFamily) -> NeuronOps:
        if family is LedgerFamily.BASE:
            return NeuronOps(
                self.network,
                BaseFamily(self.config.governance_canister, self.config.ledger_canister),
            )
        services = self.record().deployed_sns
        return NeuronOps(self.network, SuiteFamily(services.governance, services.ledger))

    def participants(self) -> List[Identity]:
        return [
            self.identities.identity_for(Principal.from_text(p.principal), self.record())
            for p in self.record().participants
        ]

    def default_identity(self, family: LedgerFamily) -> Identity:
        if family is LedgerFamily.BASE:
            return self.identities.owner_identity()
        participants = self.record().participants
        if not participants:
            raise InconsistentState("Deployment record lists no participants")
        return self.identities.identity_for(
            Principal.from_text(participants[0].principal), self.record()
        )

    def resolve_identity(self, family: LedgerFamily, principal: Optional[str]) -> Identity:
        """Signing identity for `principal`, or the family's default actor."""
        if principal is None:
            return self.default_identity(family)
        parsed = Principal.from_text(principal)
        record = try_load_record(self.config.record_path)
        return self.identities.identity_for(parsed, record)

    async def resolve_neuron(
        self, ops: NeuronOps, identity: Identity, neuron_id: Optional[str]
    ) -> NeuronId:
        if neuron_id is not None:
            return parse_neuron_id(ops.family.family, neuron_id)
        neuron = await ops.main_neuron(identity.principal, identity)
        logger.info("Using default neuron %s", neuron.id)
        return neuron.id

    # ============================================================
    # Commands
    # ============================================================

    async def deploy(self) -> DeploymentRecord:
        params = load_parameters(self.config.sns_config_path)
        logo = load_logo(self.config.logo_path)
        deployer = SnsDeployer(self.config, self.network, self.identities, params, logo)
        record = await deployer.run()
        self._record = record
        return record

    async def add_hotkey(
        self,
        family: LedgerFamily,
        hotkey: str,
        principal: Optional[str] = None,
        neuron_id: Optional[str] = None,
        permissions: Optional[List[int]] = None,
    ) -> NeuronId:
        if family is LedgerFamily.BASE and permissions is not None:
            raise InvalidArgument("Base neurons take plain hotkeys; permissions are not supported")
        hotkey_principal = Principal.from_text(hotkey)
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        await ops.add_hotkey(identity, target, hotkey_principal, permissions)
        return target

    async def list_neurons(
        self, family: LedgerFamily, principal: Optional[str] = None
    ) -> List[NeuronRef]:
        ops = self.ops(family)
        if not ops.family.lists_by_caller:
            if principal is None:
                owner = self.default_identity(family).principal
            else:
                owner = Principal.from_text(principal)
            return await ops.list_neurons(owner)
        identity = self.resolve_identity(family, principal)
        return await ops.list_neurons(identity.principal, identity)

    async def create_neuron(
        self,
        family: LedgerFamily,
        principal: Optional[str] = None,
        amount: Optional[int] = None,
        memo: Optional[int] = None,
        dissolve_delay: Optional[int] = None,
    ) -> NeuronId:
        _positive("amount", amount)
        _positive("dissolve delay", dissolve_delay)
        if memo is not None and memo < 0:
            raise InvalidArgument(f"memo must not be negative, got {memo}")
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        return await ops.create_neuron(identity, amount, memo, dissolve_delay)

    async def disburse_neuron(
        self,
        family: LedgerFamily,
        principal: Optional[str] = None,
        neuron_id: Optional[str] = None,
        receiver: Optional[str] = None,
        amount: Optional[int] = None,
        subaccount: Optional[str] = None,
    ) -> Optional[int]:
        _positive("amount", amount)
        receiver_principal = Principal.from_text(receiver) if receiver else None
        sub = parse_subaccount(subaccount)
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        return await ops.disburse(
            identity, target, receiver_principal or identity.principal, amount, sub
        )

    async def mint(
        self,
        family: LedgerFamily,
        receiver: str,
        amount: int,
        proposer: Optional[str] = None,
        subaccount: Optional[str] = None,
    ):
        """
        Base: minting-account transfer, returns the block index.
        Suite: MintSnsTokens proposal voted through by the participants,
        returns the Proposal.
        """
        if amount is None or amount <= 0:
            raise InvalidArgument(f"amount must be positive, got {amount}")
        receiver_principal = Principal.from_text(receiver)
        sub = parse_subaccount(subaccount)
        ops = self.ops(family)

        if family is LedgerFamily.BASE:
            if proposer is not None:
                raise InvalidArgument("Base minting takes no proposer")
            return await ops.mint(self.identities.minting_identity(), receiver_principal, amount, sub)

        proposer_identity = self.resolve_identity(family, proposer)
        return await ops.mint_and_vote(
            proposer_identity, self.participants(), receiver_principal, amount, sub,
            poll=self.config.proposal_poll,
        )

    async def set_visibility(
        self,
        public: bool,
        principal: Optional[str] = None,
        neuron_id: Optional[str] = None,
        family: LedgerFamily = LedgerFamily.BASE,
    ) -> NeuronId:
        if family is not LedgerFamily.BASE:
            raise InvalidArgument("Only base neurons have a visibility setting")
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        await ops.set_visibility(identity, target, public)
        return target

    async def get_neuron_info(
        self, neuron_id: Optional[str] = None, principal: Optional[str] = None
    ) -> NeuronRef:
        ops = self.ops(LedgerFamily.BASE)
        identity = self.resolve_identity(LedgerFamily.BASE, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        return await ops.get_neuron_info(identity, target)

    async def increase_dissolve_delay(
        self,
        family: LedgerFamily,
        seconds: int,
        principal: Optional[str] = None,
        neuron_id: Optional[str] = None,
    ) -> NeuronId:
        if seconds is None or seconds <= 0:
            raise InvalidArgument(f"dissolve delay must be positive, got {seconds}")
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        await ops.increase_dissolve_delay(identity, target, seconds)
        return target

    async def set_dissolving(
        self,
        family: LedgerFamily,
        start: bool,
        principal: Optional[str] = None,
        neuron_id: Optional[str] = None,
    ) -> NeuronId:
        ops = self.ops(family)
        identity = self.resolve_identity(family, principal)
        target = await self.resolve_neuron(ops, identity, neuron_id)
        await ops.set_dissolving(identity, target, start)
        return target

    async def get_balance(
        self,
        family: LedgerFamily,
        principal: Optional[str] = None,
        subaccount: Optional[str] = None,
    ) -> int:
        sub = parse_subaccount(subaccount)
        if principal is not None:
            owner = Principal.from_text(principal)
        else:
            owner = self.default_identity(family).principal
        return await self.ops(family).get_balance(owner, sub)

    async def check_deployed(self) -> bool:
        """True when a record exists and the wrapper still reports its suite."""
        record = try_load_record(self.config.record_path)
        if record is None:
            return False
        reply = await self.network.anonymous().query(
            self.config.snsw_canister,
            "get_deployed_sns_by_proposal_id",
            {"proposal_id": record.proposal_id},
        )
        result = (reply or {}).get("get_deployed_sns_by_proposal_id_result") or {}
        deployed = result.get("DeployedSns") or {}
        return deployed.get("governance_canister_id") == record.deployed_sns.governance
