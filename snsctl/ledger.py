"""
ICRC-1 Ledger
=============
Balance, fee and transfer calls shared by the base ledger and every suite ledger.

Balances and fees are read anonymously. Transfers are signed by the
sender and are never retried: a transport failure after submission
leaves the outcome unknown.
"""

import logging
import time
from typing import Optional

from .errors import InsufficientBalance, RemoteReject
from .rpc import Agent, Network
from .wallet import Principal

logger = logging.getLogger(__name__)


def _account(owner: Principal, subaccount: Optional[bytes]) -> dict:
    return {
        "owner": str(owner),
        "subaccount": subaccount.hex() if subaccount is not None else None,
    }


class Ledger:
    """
    One ICRC-1 ledger service.

    Usage:
        ledger = Ledger(network, config.ledger_canister)
        balance = await ledger.balance_of(principal)
        block = await ledger.transfer(agent, recipient, amount=100_000_000)
    """

    def __init__(self, network: Network, canister_id: str):
        self.network = network
        self.canister_id = canister_id
        self._fee: Optional[int] = None

    async def balance_of(self, owner: Principal, subaccount: Optional[bytes] = None) -> int:
        reply = await self.network.anonymous().query(
            self.canister_id, "icrc1_balance_of", _account(owner, subaccount)
        )
        return int(reply)

    async def fee(self) -> int:
        if self._fee is None:
            self._fee = int(await self.network.anonymous().query(self.canister_id, "icrc1_fee"))
        return self._fee

    async def transfer(
        self,
        agent: Agent,
        to: Principal,
        amount: int,
        to_subaccount: Optional[bytes] = None,
        fee: Optional[int] = None,
        memo: Optional[int] = None,
        from_subaccount: Optional[bytes] = None,
    ) -> int:
        """
        Transfer `amount` e8s from the agent's account.

        `fee=None` lets the ledger apply its own fee (mint transfers
        from the minting account carry none).

        Returns:
            Block index of the transfer.
        """
        arg = {
            "to": _account(to, to_subaccount),
            "amount": amount,
            "fee": fee,
            "memo": memo,
            "from_subaccount": from_subaccount.hex() if from_subaccount is not None else None,
            "created_at_time": time.time_ns(),
        }
        logger.info(
            "Transfer %d e8s from %s to %s on %s",
            amount, agent.principal, to, self.canister_id,
        )
        reply = await agent.update(self.canister_id, "icrc1_transfer", arg)

        if "Ok" in reply:
            return int(reply["Ok"])

        err = reply.get("Err") or {}
        if "InsufficientFunds" in err:
            available = int(err["InsufficientFunds"].get("balance", 0))
            raise InsufficientBalance(
                f"Ledger {self.canister_id} rejected transfer of {amount} e8s: "
                f"balance is {available} e8s",
                required=amount + (fee or 0),
                available=available,
            )
        raise RemoteReject(f"Transfer failed: {err}", method="icrc1_transfer")

    async def mint(
        self,
        minting: Agent,
        to: Principal,
        amount: int,
        to_subaccount: Optional[bytes] = None,
        memo: Optional[int] = None,
    ) -> int:
        """Transfer out of the minting account (creates new tokens)."""
        return await self.transfer(
            minting, to, amount, to_subaccount=to_subaccount, fee=None, memo=memo
        )
