"""
Neuron Operations
=================
Create, configure, list and disburse neurons on either ledger family.

One NeuronOps serves both families; everything that differs
(request shapes, id encoding, which operations exist at all) comes
from the NeuronFamily it was built with. Capability checks happen
before any network call.
"""

import logging
from typing import Iterable, List, Optional

from ..errors import InconsistentState, InsufficientBalance, InvalidArgument, RemoteReject
from ..identity import Identity
from ..ledger import Ledger
from ..polling import PollPolicy, wait_for
from ..rpc import Network
from ..wallet import Principal, neuron_subaccount
from .families import GovernanceParameters, NeuronFamily, unwrap_command
from .types import (
    DissolveState,
    LedgerFamily,
    NeuronId,
    NeuronPermission,
    NeuronRef,
    Proposal,
    ProposalKind,
    ProposalOutcome,
    parse_proposal_outcome,
    sort_neurons,
)

logger = logging.getLogger(__name__)

VOTE_YES = 1


def _require_positive(name: str, value: int) -> None:
    if value is None or value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")


class NeuronOps:
    """
    Neuron operations against one governance + ledger pair.

    Usage:
        ops = NeuronOps(network, BaseFamily(config.governance_canister, config.ledger_canister))
        neuron_id = await ops.create_neuron(owner, dissolve_delay=ONE_YEAR)
        await ops.add_hotkey(owner, neuron_id, hotkey_principal)
    """

    def __init__(self, network: Network, family: NeuronFamily):
        self.network = network
        self.family = family
        self.ledger = Ledger(network, family.ledger_id)

    @property
    def governance_id(self) -> str:
        return self.family.governance_id

    # ============================================================
    # Reads
    # ============================================================

    async def governance_parameters(self) -> GovernanceParameters:
        """Minimum stake and maximum dissolve delay, as the service reports them."""
        reply = await self.network.anonymous().query(
            self.governance_id, self.family.parameters_method
        )
        return self.family.parse_parameters(reply)

    async def get_balance(self, principal: Principal, subaccount: Optional[bytes] = None) -> int:
        return await self.ledger.balance_of(principal, subaccount)

    async def list_neurons(
        self, principal: Principal, caller: Optional[Identity] = None
    ) -> List[NeuronRef]:
        """
        Neurons of `principal`, sorted by dissolve delay (ascending) then stake (descending).

        Base governance only shows neurons to their controller or hotkeys,
        so `caller` must be an identity that can read them. Suite
        governance is listed anonymously by principal.
        """
        if self.family.lists_by_caller:
            if caller is None:
                raise InvalidArgument("Listing base neurons needs a signing identity")
            reply = await self.network.agent(caller).query(
                self.governance_id, "list_neurons", self.family.list_arg()
            )
            neurons = [self.family.parse_neuron(raw) for raw in reply.get("full_neurons", [])]
            return sort_neurons(neurons)

        neurons: List[NeuronRef] = []
        start = None
        agent = self.network.anonymous()
        while True:
            arg = self.family.list_arg(principal, start_page_at=start)
            reply = await agent.query(self.governance_id, "list_neurons", arg)
            page = reply.get("neurons", [])
            neurons.extend(self.family.parse_neuron(raw) for raw in page)
            if len(page) < arg["limit"]:
                break
            start = page[-1]["id"]["id"]
        return sort_neurons(neurons)

    def default_neuron(self, neurons: List[NeuronRef]) -> Optional[NeuronRef]:
        """
        Neuron to act on when none was named.

        Base: the first in sorted order. Suite: the main neuron, i.e. the
        last non-dissolving one in sorted order (longest delay; among equal
        delays, the smallest stake), else the last in sorted order.
        """
        if not neurons:
            return None
        ordered = sort_neurons(neurons)
        if self.family.family is LedgerFamily.BASE:
            return ordered[0]
        locked = [n for n in ordered if n.dissolve_state is DissolveState.NOT_DISSOLVING]
        if locked:
            return locked[-1]
        return ordered[-1]

    async def main_neuron(self, principal: Principal, caller: Optional[Identity] = None) -> NeuronRef:
        neuron = self.default_neuron(await self.list_neurons(principal, caller))
        if neuron is None:
            raise InconsistentState(
                f"{principal} has no {self.family.family.value} neurons"
            )
        return neuron

    async def get_neuron_info(self, identity: Identity, neuron_id: NeuronId) -> NeuronRef:
        """Full neuron as seen by `identity` (base governance)."""
        if self.family.family is not LedgerFamily.BASE:
            raise InvalidArgument("get-neuron-info is only available for base neurons")
        reply = await self.network.agent(identity).query(
            self.governance_id, "get_full_neuron", neuron_id
        )
        if "Err" in reply:
            err = reply["Err"] or {}
            raise RemoteReject(err.get("error_message") or str(err), method="get_full_neuron",
                               code=err.get("error_type"))
        return self.family.parse_neuron(reply["Ok"])

    # ============================================================
    # Neuron lifecycle
    # ============================================================

    def stake_subaccount(self, controller: Principal, memo: int) -> bytes:
        return neuron_subaccount(controller, memo)

    async def _manage(self, identity: Identity, arg: dict, expected: str) -> dict:
        reply = await self.network.agent(identity).update(self.governance_id, "manage_neuron", arg)
        return unwrap_command(reply, expected)

    async def claim_neuron(self, identity: Identity, memo: int) -> NeuronId:
        """Claim whatever sits in the (identity, memo) stake subaccount."""
        result = await self._manage(
            identity, self.family.claim_arg(identity.principal, memo), "ClaimOrRefresh"
        )
        neuron_id = self.family.claimed_id(result)
        logger.info("Claimed %s neuron %s (memo %d)", self.family.family.value, neuron_id, memo)
        return neuron_id

    async def create_neuron(
        self,
        identity: Identity,
        amount: Optional[int] = None,
        memo: Optional[int] = None,
        dissolve_delay: Optional[int] = None,
    ) -> NeuronId:
        """
        Stake `amount` e8s (default: whole balance) into a new neuron.

        The stake is `amount - fee`; it must reach the remote minimum stake.
        Nothing is transferred unless the balance covers it.

        Returns:
            Id of the claimed neuron.
        """
        if amount is not None:
            _require_positive("amount", amount)
        if dissolve_delay is not None:
            _require_positive("dissolve delay", dissolve_delay)

        principal = identity.principal
        fee = await self.ledger.fee()
        params = await self.governance_parameters()
        balance = await self.ledger.balance_of(principal)

        if amount is None:
            amount = balance
        required = params.neuron_minimum_stake_e8s + fee
        if amount < required:
            raise InsufficientBalance(
                f"Amount {amount} e8s is below minimum stake plus fee ({required} e8s)",
                required=required,
                available=amount,
            )
        if balance < amount:
            raise InsufficientBalance(
                f"Balance {balance} e8s is less than requested {amount} e8s",
                required=amount,
                available=balance,
            )

        if memo is None:
            memo = len(await self.list_neurons(principal, identity)) + 1

        await self.ledger.transfer(
            self.network.agent(identity),
            self.family.governance_principal,
            amount - fee,
            to_subaccount=self.stake_subaccount(principal, memo),
            fee=fee,
            memo=memo,
        )
        neuron_id = await self.claim_neuron(identity, memo)

        if dissolve_delay:
            await self.increase_dissolve_delay(identity, neuron_id, dissolve_delay)
        return neuron_id

    async def increase_dissolve_delay(
        self, identity: Identity, neuron_id: NeuronId, seconds: int
    ) -> None:
        """Add `seconds` to the dissolve delay (the remote side caps it)."""
        _require_positive("dissolve delay", seconds)
        arg = self.family.configure(
            neuron_id,
            {"IncreaseDissolveDelay": {"additional_dissolve_delay_seconds": seconds}},
        )
        await self._manage(identity, arg, "Configure")
        logger.info("Increased dissolve delay of %s by %ds", neuron_id, seconds)

    async def set_dissolving(self, identity: Identity, neuron_id: NeuronId, start: bool) -> None:
        operation = {"StartDissolving": {}} if start else {"StopDissolving": {}}
        await self._manage(identity, self.family.configure(neuron_id, operation), "Configure")
        logger.info("%s dissolving %s", "Started" if start else "Stopped", neuron_id)

    async def set_visibility(self, identity: Identity, neuron_id: NeuronId, public: bool) -> None:
        if not self.family.supports_visibility:
            raise InvalidArgument(
                f"{self.family.family.value} neurons have no visibility setting"
            )
        await self._manage(
            identity, self.family.visibility_command(neuron_id, public), "Configure"
        )

    async def add_hotkey(
        self,
        identity: Identity,
        neuron_id: NeuronId,
        hotkey: Principal,
        permissions: Optional[Iterable[int]] = None,
    ) -> None:
        """
        Let `hotkey` act on the neuron.

        Suite neurons grant explicit permissions (default SUBMIT_PROPOSAL
        and VOTE); base neurons take a plain hotkey and reject permissions.
        """
        arg = self.family.hotkey_command(neuron_id, hotkey, permissions)
        expected = "AddNeuronPermission" if self.family.uses_permissions else "Configure"
        await self._manage(identity, arg, expected)
        logger.info("Added hotkey %s to %s", hotkey, neuron_id)

    async def disburse(
        self,
        identity: Identity,
        neuron_id: NeuronId,
        receiver: Principal,
        amount: Optional[int] = None,
        subaccount: Optional[bytes] = None,
    ) -> Optional[int]:
        """
        Disburse a dissolved neuron (all of it unless `amount` is given).

        Eligibility is the governance service's call; its refusal comes
        back verbatim as a RemoteReject.
        """
        if amount is not None:
            _require_positive("amount", amount)
        arg = self.family.disburse_command(neuron_id, receiver, subaccount, amount)
        result = await self._manage(identity, arg, "Disburse")
        return result.get("transfer_block_height")

    # ============================================================
    # Proposals and minting
    # ============================================================

    async def make_proposal(
        self,
        identity: Identity,
        neuron_id: NeuronId,
        title: str,
        summary: str,
        action: dict,
        url: str = "",
    ) -> int:
        arg = self.family.manage_arg(neuron_id, {
            "MakeProposal": {"title": title, "summary": summary, "url": url, "action": action}
        })
        result = await self._manage(identity, arg, "MakeProposal")
        proposal_id = int(result["proposal_id"]["id"])
        logger.info("Proposal %d submitted by neuron %s", proposal_id, neuron_id)
        return proposal_id

    async def register_vote(
        self, identity: Identity, neuron_id: NeuronId, proposal_id: int, yes: bool = True
    ) -> None:
        arg = self.family.manage_arg(neuron_id, {
            "RegisterVote": {"proposal": {"id": proposal_id}, "vote": VOTE_YES if yes else 2}
        })
        await self._manage(identity, arg, "RegisterVote")

    async def mint(
        self,
        minting: Identity,
        receiver: Principal,
        amount: int,
        subaccount: Optional[bytes] = None,
    ) -> int:
        """Base family: transfer new tokens out of the minting account."""
        _require_positive("amount", amount)
        if self.family.can_mint_by_proposal:
            raise InvalidArgument("Suite tokens are minted by proposal; use mint_and_vote")
        return await self.ledger.mint(
            self.network.agent(minting), receiver, amount, to_subaccount=subaccount
        )

    async def proposal_outcome(self, proposal_id: int) -> ProposalOutcome:
        """
        Outcome of a suite proposal as governance reports it.

        A proposal that was adopted but failed to execute is a RemoteReject
        carrying the failure reason.
        """
        if not self.family.proposal_method:
            raise InvalidArgument(
                f"{self.family.family.value} proposals are not read from governance"
            )
        method = self.family.proposal_method
        reply = await self.network.anonymous().query(
            self.governance_id, method, self.family.proposal_arg(proposal_id)
        )
        result = (reply or {}).get("result") or {}
        if "Error" in result:
            err = result["Error"] or {}
            raise RemoteReject(err.get("error_message") or str(err), method=method,
                               code=err.get("error_type"))
        data = result.get("Proposal")
        if data is None:
            raise RemoteReject(f"Proposal {proposal_id} not found", method=method)
        if data.get("failed_timestamp_seconds"):
            reason = (data.get("failure_reason") or {}).get("error_message") or "unknown reason"
            raise RemoteReject(f"Proposal {proposal_id} failed to execute: {reason}",
                               method=method)
        return parse_proposal_outcome(data)

    async def _vote_all(
        self, voters: List[Identity], proposal_id: int, proposed_by: NeuronId
    ) -> int:
        """YES with every neuron each voter may vote with. Returns the number of votes cast."""
        params = await self.governance_parameters()
        voted = {proposed_by}
        for voter in voters:
            for voter_neuron in await self.list_neurons(voter.principal):
                granted = voter_neuron.permissions.get(str(voter.principal), [])
                if voter_neuron.id in voted or NeuronPermission.VOTE not in granted:
                    continue
                if (voter_neuron.dissolve_delay_seconds or 0) < (
                    params.minimum_dissolve_delay_to_vote_seconds
                ):
                    continue
                await self.register_vote(voter, voter_neuron.id, proposal_id)
                voted.add(voter_neuron.id)
                logger.info("Neuron %s voted YES on proposal %d", voter_neuron.id, proposal_id)
        return len(voted) - 1

    async def mint_and_vote(
        self,
        proposer: Identity,
        voters: List[Identity],
        receiver: Principal,
        amount: int,
        subaccount: Optional[bytes] = None,
        poll: PollPolicy = PollPolicy(2.0, 30),
    ) -> Proposal:
        """
        Suite family: propose MintSnsTokens from the proposer's main neuron,
        vote YES with every eligible neuron of every voter, then wait for
        the proposal to be executed.

        Only meaningful in a test deployment where this tool controls
        enough voting power to carry the proposal.

        Raises:
            RemoteReject: the proposal was rejected or failed to execute.
            TimeoutWaitingForState: still undecided when `poll` runs out.
        """
        _require_positive("amount", amount)
        if not self.family.can_mint_by_proposal:
            raise InvalidArgument("Base tokens are minted by transfer; use mint")

        neuron = await self.main_neuron(proposer.principal)
        action = {
            "MintSnsTokens": {
                "to_principal": str(receiver),
                "to_subaccount": subaccount.hex() if subaccount is not None else None,
                "memo": None,
                "amount_e8s": amount,
            }
        }
        proposal_id = await self.make_proposal(
            proposer,
            neuron.id,
            f"Mint {amount} e8s to {receiver}",
            f"Mint {amount} e8s of suite tokens to {receiver}.",
            action,
        )

        votes = await self._vote_all(voters, proposal_id, neuron.id)
        logger.info("Proposal %d: %d YES vote(s) besides the proposer", proposal_id, votes)

        proposal = Proposal(proposal_id, ProposalKind.MINT_TOKENS, neuron.id)

        async def decided() -> Optional[ProposalOutcome]:
            proposal.outcome = await self.proposal_outcome(proposal_id)
            if proposal.outcome in (ProposalOutcome.EXECUTED, ProposalOutcome.REJECTED):
                return proposal.outcome
            return None

        await wait_for(
            decided,
            poll,
            f"execution of proposal {proposal_id}",
            observe=lambda: proposal.outcome.name,
        )
        if proposal.outcome is ProposalOutcome.REJECTED:
            raise RemoteReject(f"Proposal {proposal_id} was rejected", method="get_proposal")
        return proposal
