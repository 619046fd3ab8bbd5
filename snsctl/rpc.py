"""
Gateway RPC
===========
Signed query/update calls to services behind a JSON gateway.

The replica itself speaks CBOR envelopes with Candid arguments and
answers updates asynchronously (202, then read_state). snsctl does not
implement that protocol: it talks to a gateway that accepts the JSON
envelope below, decodes it into the native call and answers
synchronously. The tests serve the same envelope from an in-memory
replica; Network takes any httpx transport.

Envelope (JSON over HTTP):

    POST {gateway}/api/v2/canister/{canister_id}/query|call
    {"content": {...}, "sender_pubkey": hex, "sender_sig": hex}

    -> {"status": "replied", "reply": ...}
    -> {"status": "rejected", "reject_code": int, "reject_message": str}

Queries are read-only and safe to repeat. Updates may move value; a
transport failure on an update leaves the outcome unknown, so nothing
in this module retries.
"""

import hashlib
import json
import logging
import secrets
import time
from typing import Any, Optional

import httpx

from .config import Config
from .errors import NetworkError, RemoteReject
from .identity import Identity

logger = logging.getLogger(__name__)

REQUEST_DOMAIN = b"\x0aic-request"
INGRESS_EXPIRY_SECONDS = 300


def request_digest(content: dict) -> bytes:
    """Domain-separated sha256 of the canonical JSON content."""
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":")).encode()
    return REQUEST_DOMAIN + hashlib.sha256(canonical).digest()


class Agent:
    """Makes calls on behalf of one identity."""

    def __init__(self, client: httpx.AsyncClient, identity: Identity):
        self.client = client
        self.identity = identity

    @property
    def principal(self):
        return self.identity.principal

    async def query(self, canister_id: str, method: str, arg: Any = None) -> Any:
        return await self._call("query", canister_id, method, arg)

    async def update(self, canister_id: str, method: str, arg: Any = None) -> Any:
        return await self._call("call", canister_id, method, arg)

    def _envelope(self, kind: str, canister_id: str, method: str, arg: Any) -> dict:
        content = {
            "request_type": kind,
            "canister_id": canister_id,
            "method_name": method,
            "arg": arg,
            "sender": str(self.identity.principal),
            "nonce": secrets.token_hex(8),
            "ingress_expiry": time.time_ns() + INGRESS_EXPIRY_SECONDS * 1_000_000_000,
        }
        envelope = {"content": content, "sender_pubkey": None, "sender_sig": None}

        key = self.identity.key
        if key is not None:
            envelope["sender_pubkey"] = key.public_key_der.hex()
            envelope["sender_sig"] = key.sign(request_digest(content)).hex()
        return envelope

    async def _call(self, kind: str, canister_id: str, method: str, arg: Any) -> Any:
        envelope = self._envelope(kind, canister_id, method, arg)
        url = f"/api/v2/canister/{canister_id}/{kind}"
        logger.debug("%s %s.%s as %s", kind, canister_id, method, self.identity.principal)

        try:
            response = await self.client.post(url, json=envelope)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} on {canister_id}: {e.__class__.__name__}: {e}")

        if response.status_code >= 500:
            raise NetworkError(
                f"{method} on {canister_id}: gateway returned HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise RemoteReject(
                f"HTTP {response.status_code}: {response.text}",
                method=method,
                code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise NetworkError(f"{method} on {canister_id}: unreadable reply")

        status = body.get("status")
        if status == "replied":
            return body.get("reply")
        if status == "rejected":
            raise RemoteReject(
                body.get("reject_message", "rejected"),
                method=method,
                code=body.get("reject_code"),
            )
        raise NetworkError(f"{method} on {canister_id}: unexpected reply status {status!r}")


class Network:
    """
    One HTTP connection pool to the gateway, shared by every Agent.

    Usage:
        async with Network(config) as network:
            agent = network.agent(identity)
            balance = await agent.query(ledger, "icrc1_balance_of", {...})
    """

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.replica_url,
            timeout=config.request_timeout,
            transport=transport,
        )

    def agent(self, identity: Identity) -> Agent:
        return Agent(self.client, identity)

    def anonymous(self) -> Agent:
        return Agent(self.client, Identity.anonymous())

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "Network":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
