"""
Swap Participation Engine
=========================
Drives buyers through a suite's swap:

1. Sale ticket (reused if an equal one is already open)
2. Transfer whatever the swap's collection account for the buyer still
   lacks of the ticket amount (nothing when an earlier run already paid)
3. refresh_buyer_tokens so the swap counts the funds

Buyers are processed one at a time. None of the value-moving calls is
retried; a failure stops participation and reports how far each buyer got.
"""

import logging
from typing import Iterable, List, Optional

from ..errors import InconsistentState, RemoteReject, SnsctlError
from ..identity import Identity
from ..ledger import Ledger
from ..rpc import Agent, Network
from ..wallet import Principal, principal_subaccount
from .types import (
    DerivedState,
    ParticipantState,
    SwapLifecycle,
    SwapParticipant,
    SwapStatus,
    Ticket,
)

logger = logging.getLogger(__name__)


class SwapParticipationEngine:
    """
    Participation in one swap.

    Usage:
        engine = SwapParticipationEngine(network, services.swap, config.ledger_canister)
        await engine.refresh_status()
        participants = await engine.participate_all(identities, amount_e8s)
    """

    def __init__(
        self,
        network: Network,
        swap_id: str,
        base_ledger_id: str,
        transfer_fee_e8s: int,
    ):
        self.network = network
        self.swap_id = swap_id
        self.ledger = Ledger(network, base_ledger_id)
        self.transfer_fee_e8s = transfer_fee_e8s
        self.status: Optional[SwapStatus] = None

    @property
    def lifecycle(self) -> Optional[SwapLifecycle]:
        """Last lifecycle observed, None before the first read."""
        return self.status.lifecycle if self.status is not None else None

    # ============================================================
    # Reads
    # ============================================================

    async def refresh_status(self) -> SwapStatus:
        reply = await self.network.anonymous().query(self.swap_id, "get_lifecycle", {})
        self.status = SwapStatus.from_reply(reply)
        return self.status

    async def derived_state(self) -> DerivedState:
        reply = await self.network.anonymous().query(self.swap_id, "get_derived_state", {})
        return DerivedState.from_reply(reply)

    async def open_ticket(self, agent: Agent) -> Optional[Ticket]:
        reply = await agent.query(self.swap_id, "get_open_ticket", {})
        result = reply.get("result") or {}
        if "Err" in result:
            raise RemoteReject(f"get_open_ticket failed: {result['Err']}", method="get_open_ticket")
        ticket = (result.get("Ok") or {}).get("ticket")
        return Ticket.from_reply(ticket) if ticket else None

    # ============================================================
    # Participation
    # ============================================================

    def _check_amount(self, ticket: Ticket, amount_e8s: int) -> Ticket:
        if ticket.amount_e8s != amount_e8s:
            raise InconsistentState(
                f"Open ticket {ticket.ticket_id} is for {ticket.amount_e8s} e8s, "
                f"not {amount_e8s} e8s"
            )
        logger.info("Reusing open ticket %d", ticket.ticket_id)
        return ticket

    async def obtain_ticket(self, agent: Agent, amount_e8s: int) -> Ticket:
        """Reuse an equal open ticket or create one. An unequal ticket is InconsistentState."""
        existing = await self.open_ticket(agent)
        if existing is not None:
            return self._check_amount(existing, amount_e8s)

        reply = await agent.update(
            self.swap_id,
            "new_sale_ticket",
            {"amount_icp_e8s": amount_e8s, "subaccount": None},
        )
        result = reply.get("result") or {}
        if "Ok" in result and (result["Ok"] or {}).get("ticket"):
            ticket = Ticket.from_reply(result["Ok"]["ticket"])
            logger.info("Sale ticket %d created for %d e8s", ticket.ticket_id, amount_e8s)
            return ticket

        err = result.get("Err") or {}
        if err.get("existing_ticket"):
            return self._check_amount(Ticket.from_reply(err["existing_ticket"]), amount_e8s)
        if err.get("invalid_user_amount"):
            invalid = err["invalid_user_amount"]
            raise RemoteReject(
                f"Invalid amount {amount_e8s} e8s (min: {invalid.get('min_amount_icp_e8s_included')},"
                f" max: {invalid.get('max_amount_icp_e8s_included')})",
                method="new_sale_ticket",
                code=err.get("error_type"),
            )
        raise RemoteReject(
            f"Sale ticket error type {err.get('error_type')}",
            method="new_sale_ticket",
            code=err.get("error_type"),
        )

    async def participate(self, participant: SwapParticipant, amount_e8s: int) -> SwapParticipant:
        """
        Commit `amount_e8s` for one buyer.

        The swap must have been observed OPEN; otherwise nothing is sent.
        """
        if self.lifecycle is not SwapLifecycle.OPEN:
            observed = self.lifecycle.name if self.lifecycle is not None else "unknown"
            raise InconsistentState(f"Swap is not open (lifecycle: {observed})")

        agent = self.network.agent(participant.identity)
        buyer = participant.principal

        ticket = await self.obtain_ticket(agent, amount_e8s)
        participant.ticket_id = ticket.ticket_id
        participant.state = ParticipantState.TICKETED

        swap = Principal.from_text(self.swap_id)
        collection = principal_subaccount(buyer)
        held = await self.ledger.balance_of(swap, collection)
        shortfall = ticket.amount_e8s - held
        if shortfall > 0:
            await self.ledger.transfer(
                agent, swap, shortfall, to_subaccount=collection, fee=self.transfer_fee_e8s
            )
        else:
            logger.info("Collection account for %s already holds %d e8s", buyer, held)
        participant.state = ParticipantState.TRANSFERRED

        reply = await agent.update(
            self.swap_id,
            "refresh_buyer_tokens",
            {"buyer": str(buyer), "confirmation_text": None},
        )
        accepted = int(reply.get("icp_accepted_participation_e8s") or 0)
        logger.info(
            "Swap reports for %s: accepted %d e8s, ledger balance %s e8s",
            buyer, accepted, reply.get("icp_ledger_account_balance_e8s"),
        )
        if accepted == 0:
            raise InconsistentState(f"Swap accepted no participation from {buyer}")

        participant.committed_e8s = accepted
        participant.state = ParticipantState.CONFIRMED
        return participant

    async def participate_all(
        self, identities: Iterable[Identity], amount_e8s: int
    ) -> List[SwapParticipant]:
        """Participate with each identity in turn; stop at the first failure."""
        participants = [SwapParticipant(identity) for identity in identities]
        for index, participant in enumerate(participants, start=1):
            try:
                await self.participate(participant, amount_e8s)
            except SnsctlError as e:
                e.progress["participants"] = [
                    {"principal": str(p.principal), "state": p.state.value}
                    for p in participants
                ]
                raise
            logger.info(
                "Participant %d/%d committed %d e8s (%s)",
                index, len(participants), participant.committed_e8s, participant.principal,
            )
        return participants

    async def finalize(self) -> None:
        """Call finalize_swap once. Its error message is logged; the lifecycle decides."""
        reply = await self.network.anonymous().update(self.swap_id, "finalize_swap", {})
        error = (reply or {}).get("error_message")
        if error:
            logger.warning("finalize_swap reported: %s", error)
