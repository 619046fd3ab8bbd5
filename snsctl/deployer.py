"""
SNS Deployer
============
Deploys a suite on a local network and drives its swap to completion.

Stages (strictly in order):
    INIT -> FUNDING_NEURON_CREATED -> OWNER_FUNDED -> PROPOSAL_SUBMITTED
    -> AWAITING_EXECUTION -> SUITE_DEPLOYED -> PARTICIPANTS_FUNDED
    -> AWAITING_SWAP_OPEN -> PARTICIPATING -> THRESHOLD_REACHED
    -> FINALIZED -> RECORDED

Most steps move value and cannot be undone. Nothing is retried except
read-only polls; a failure stops the run and the raised error names the
step, the last confirmed stage and everything confirmed so far.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from .config import Config
from .errors import ConfigError, InconsistentState, SnsctlError
from .identity import Identity, IdentityManager
from .ledger import Ledger
from .neurons import BaseFamily, NeuronOps
from .polling import wait_for
from .records import (
    SERVICE_KEYS,
    DeploymentRecord,
    ParticipantRecord,
    SuiteServices,
    save_record,
)
from .rpc import Network
from .sns_config import SnsParameters, build_proposal
from .swap import DerivedState, SwapLifecycle, SwapParticipationEngine, SwapStatus

logger = logging.getLogger(__name__)


class DeployStage(Enum):
    INIT = "init"
    FUNDING_NEURON_CREATED = "funding_neuron_created"
    OWNER_FUNDED = "owner_funded"
    PROPOSAL_SUBMITTED = "proposal_submitted"
    AWAITING_EXECUTION = "awaiting_execution"
    SUITE_DEPLOYED = "suite_deployed"
    PARTICIPANTS_FUNDED = "participants_funded"
    AWAITING_SWAP_OPEN = "awaiting_swap_open"
    PARTICIPATING = "participating"
    THRESHOLD_REACHED = "threshold_reached"
    FINALIZED = "finalized"
    RECORDED = "recorded"


class SnsDeployer:
    """
    One deployment run.

    Usage:
        async with Network(config) as network:
            deployer = SnsDeployer(config, network, IdentityManager(config), params, logo)
            record = await deployer.run()
    """

    def __init__(
        self,
        config: Config,
        network: Network,
        identities: IdentityManager,
        params: SnsParameters,
        logo: str,
        clock: Callable[[], float] = time.time,
        report: Callable[[str], None] = print,
    ):
        self.config = config
        self.network = network
        self.identities = identities
        self.params = params
        self.logo = logo
        self.clock = clock
        self.report = report

        self.base = NeuronOps(
            network, BaseFamily(config.governance_canister, config.ledger_canister)
        )
        self.ledger = Ledger(network, config.ledger_canister)

        self.stage = DeployStage.INIT
        self.commitment_e8s = self._check_amounts()

        # Confirmed progress
        self.owner: Optional[Identity] = None
        self.minting: Optional[Identity] = None
        self.funding_neuron_id: Optional[int] = None
        self.proposal_id: Optional[int] = None
        self.services: Optional[SuiteServices] = None
        self.participants: List[Identity] = []
        self.engine: Optional[SwapParticipationEngine] = None

    # ============================================================
    # Driver
    # ============================================================

    def _check_amounts(self) -> int:
        """Validate static amounts before anything touches the network. Returns the commitment."""
        params = self.params
        config = self.config
        commitment = config.participant_commitment_e8s
        if commitment is None:
            commitment = params.minimum_participant_icp_e8s

        if not params.minimum_participant_icp_e8s <= commitment <= params.maximum_participant_icp_e8s:
            raise ConfigError(
                f"Participant commitment {commitment} e8s is outside the swap's per-participant "
                f"range [{params.minimum_participant_icp_e8s}, {params.maximum_participant_icp_e8s}]",
                step="init", last_state=DeployStage.INIT.name,
            )
        needed = commitment + config.base_transfer_fee_e8s
        if config.participant_funding_e8s < needed:
            raise ConfigError(
                f"Participant funding {config.participant_funding_e8s} e8s does not cover "
                f"commitment plus fee ({needed} e8s)",
                step="init", last_state=DeployStage.INIT.name,
            )
        if config.participant_count < params.minimum_participants:
            raise ConfigError(
                f"{config.participant_count} participants cannot reach the swap minimum of "
                f"{params.minimum_participants}",
                step="init", last_state=DeployStage.INIT.name,
            )
        total = commitment * config.participant_count
        if not params.minimum_direct_participation_icp_e8s <= total <= params.maximum_direct_participation_icp_e8s:
            raise ConfigError(
                f"Total commitment {total} e8s is outside the swap's direct participation range "
                f"[{params.minimum_direct_participation_icp_e8s}, "
                f"{params.maximum_direct_participation_icp_e8s}]",
                step="init", last_state=DeployStage.INIT.name,
            )
        return commitment

    def progress(self) -> dict:
        """Everything confirmed so far, for error reports."""
        progress = {}
        if self.funding_neuron_id is not None:
            progress["funding_neuron_id"] = self.funding_neuron_id
        if self.proposal_id is not None:
            progress["proposal_id"] = self.proposal_id
        if self.services is not None:
            progress["deployed_sns"] = self.services.to_dict()
        if self.participants:
            progress["participants"] = [str(p.principal) for p in self.participants]
        return progress

    def _advance(self, stage: DeployStage) -> None:
        self.stage = stage
        logger.info("Stage: %s", stage.name)

    async def _step(self, name: str, step, next_stage: Optional[DeployStage]) -> None:
        self.report(f"[deploy] {name}...")
        try:
            await step()
        except SnsctlError as e:
            raise e.annotate(name, self.stage.name, self.progress())
        if next_stage is not None:
            self._advance(next_stage)

    async def run(self) -> DeploymentRecord:
        """Run every stage. Returns the record that was written."""
        self.report(f"[deploy] Deploying {self.params.name} on {self.config.network}")
        try:
            self.owner = self.identities.owner_identity()
            self.minting = self.identities.minting_identity()
        except SnsctlError as e:
            raise e.annotate("load identities", self.stage.name)
        self.report(f"[deploy] Owner: {self.owner.principal}")

        await self._step("create funding neuron", self._create_funding_neuron,
                         DeployStage.FUNDING_NEURON_CREATED)
        await self._step("fund owner", self._fund_owner, DeployStage.OWNER_FUNDED)
        await self._step("submit proposal", self._submit_proposal, DeployStage.PROPOSAL_SUBMITTED)
        self._advance(DeployStage.AWAITING_EXECUTION)
        await self._step("await proposal execution", self._await_execution,
                         DeployStage.SUITE_DEPLOYED)
        await self._step("fund participants", self._fund_participants,
                         DeployStage.PARTICIPANTS_FUNDED)
        self._advance(DeployStage.AWAITING_SWAP_OPEN)
        await self._step("await swap open", self._await_swap_open, DeployStage.PARTICIPATING)
        await self._step("participate", self._participate, None)
        await self._step("await swap thresholds", self._await_thresholds,
                         DeployStage.THRESHOLD_REACHED)
        await self._step("finalize swap", self._finalize, DeployStage.FINALIZED)
        record = self.build_record()
        await self._step("write record", self._write_record(record), DeployStage.RECORDED)

        self.report(f"[deploy] Done. Record written to {self.config.record_path}")
        return record

    # ============================================================
    # Steps
    # ============================================================

    async def _create_funding_neuron(self) -> None:
        """Mint the stake into the owner's neuron subaccount, claim it, lock it for the maximum."""
        memo = self.config.neuron_memo
        await self.ledger.mint(
            self.network.agent(self.minting),
            self.base.family.governance_principal,
            self.config.funding_neuron_e8s,
            to_subaccount=self.base.stake_subaccount(self.owner.principal, memo),
            memo=memo,
        )
        self.funding_neuron_id = await self.base.claim_neuron(self.owner, memo)

        params = await self.base.governance_parameters()
        await self.base.increase_dissolve_delay(
            self.owner, self.funding_neuron_id, params.max_dissolve_delay_seconds
        )
        self.report(f"[deploy] Funding neuron: {self.funding_neuron_id}")

    async def _fund_owner(self) -> None:
        await self.ledger.mint(
            self.network.agent(self.minting), self.owner.principal, self.config.owner_funding_e8s
        )

    async def _submit_proposal(self) -> None:
        action = {"CreateServiceNervousSystem": build_proposal(
            self.params, self.owner.principal, self.logo
        )}
        self.proposal_id = await self.base.make_proposal(
            self.owner,
            self.funding_neuron_id,
            self.params.proposal_title(),
            self.params.proposal_summary(),
            action,
        )
        self.report(f"[deploy] Proposal: {self.proposal_id}")

    async def _poll_deployed(self) -> Optional[SuiteServices]:
        reply = await self.network.anonymous().query(
            self.config.snsw_canister,
            "get_deployed_sns_by_proposal_id",
            {"proposal_id": self.proposal_id},
        )
        result = (reply or {}).get("get_deployed_sns_by_proposal_id_result") or {}
        deployed = result.get("DeployedSns")
        if not deployed or not all(deployed.get(key) for key in SERVICE_KEYS):
            return None
        return SuiteServices.from_dict(deployed)

    async def _await_execution(self) -> None:
        self.services = await wait_for(
            self._poll_deployed,
            self.config.execution_poll,
            f"suite deployment for proposal {self.proposal_id}",
        )
        self.engine = SwapParticipationEngine(
            self.network,
            self.services.swap,
            self.config.ledger_canister,
            self.config.base_transfer_fee_e8s,
        )
        self.report(f"[deploy] Suite governance: {self.services.governance}")
        self.report(f"[deploy] Suite swap: {self.services.swap}")

    async def _fund_participants(self) -> None:
        minting = self.network.agent(self.minting)
        for index in range(1, self.config.participant_count + 1):
            identity = self.identities.derive_participant(index)
            await self.ledger.mint(
                minting, identity.principal, self.config.participant_funding_e8s
            )
            self.participants.append(identity)
            self.report(f"[deploy] Funded participant {index}: {identity.principal}")

    def _observed_lifecycle(self) -> Optional[str]:
        lifecycle = self.engine.lifecycle
        return lifecycle.name if lifecycle is not None else None

    async def _poll_open(self) -> Optional[SwapStatus]:
        status = await self.engine.refresh_status()
        if status.lifecycle is SwapLifecycle.ABORTED:
            raise InconsistentState("Swap was aborted before it opened")
        if status.lifecycle is SwapLifecycle.OPEN:
            return status
        return None

    async def _await_swap_open(self) -> None:
        await wait_for(
            self._poll_open,
            self.config.swap_open_poll,
            "swap to open",
            observe=self._observed_lifecycle,
        )

    async def _participate(self) -> None:
        await self.engine.participate_all(self.participants, self.commitment_e8s)
        self.report(
            f"[deploy] {len(self.participants)} participants committed "
            f"{self.commitment_e8s} e8s each"
        )

    def _thresholds_met(self, derived: DerivedState) -> bool:
        return (
            derived.direct_participant_count >= self.params.minimum_participants
            and derived.direct_participation_e8s >= self.params.minimum_direct_participation_icp_e8s
        )

    async def _poll_thresholds(self):
        derived = await self.engine.derived_state()
        if self._thresholds_met(derived):
            return derived

        status = await self.engine.refresh_status()
        if status.lifecycle is SwapLifecycle.ABORTED:
            raise InconsistentState("Swap was aborted while waiting for participation thresholds")
        if status.lifecycle is SwapLifecycle.COMMITTED:
            return derived
        end = status.termination_timestamp_seconds
        if end is not None and self.clock() >= end:
            logger.info("Swap termination time passed; proceeding to finalize")
            return derived
        return None

    async def _await_thresholds(self) -> None:
        await wait_for(
            self._poll_thresholds,
            self.config.threshold_poll,
            "swap participation thresholds",
            observe=self._observed_lifecycle,
        )

    async def _poll_committed(self) -> Optional[SwapStatus]:
        status = await self.engine.refresh_status()
        if status.lifecycle is SwapLifecycle.ABORTED:
            raise InconsistentState("Swap aborted during finalization")
        if status.lifecycle is SwapLifecycle.COMMITTED:
            return status
        return None

    async def _finalize(self) -> None:
        await self.engine.finalize()
        await wait_for(
            self._poll_committed,
            self.config.finalize_poll,
            "swap to commit",
            observe=self._observed_lifecycle,
        )
        self.report("[deploy] Swap committed")

    def build_record(self) -> DeploymentRecord:
        return DeploymentRecord(
            funding_neuron_id=self.funding_neuron_id,
            proposal_id=self.proposal_id,
            owner_principal=str(self.owner.principal),
            deployed_sns=self.services,
            participants=[
                ParticipantRecord(str(p.principal), str(p.seed_file)) for p in self.participants
            ],
        )

    def _write_record(self, record: DeploymentRecord):
        async def write():
            try:
                save_record(record, self.config.record_path)
            except OSError as e:
                raise SnsctlError(f"Failed to write {self.config.record_path}: {e}")
        return write
