"""
Unit Tests for Gateway RPC
==========================
Tests request signing and how gateway answers map to errors.

Run: python -m pytest tests/test_rpc.py -v
"""

import json

import httpx
import pytest
from ecdsa import VerifyingKey

from snsctl.errors import NetworkError, RemoteReject
from snsctl.identity import Identity, IdentityRole
from snsctl.rpc import Network, request_digest
from snsctl.wallet import KeyPair, seed_for_index

CANISTER = "ryjl3-tyaaa-aaaaa-aaaba-cai"


def _identity():
    key = KeyPair.from_seed(seed_for_index(1))
    return Identity(key.principal, key, IdentityRole.PARTICIPANT)


def _network(config, handler):
    return Network(config, transport=httpx.MockTransport(handler))


# ============================================================
# Envelope Tests
# ============================================================

class TestEnvelope:
    """What goes over the wire."""

    @pytest.mark.asyncio
    async def test_signed_request(self, config):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "replied", "reply": 42})

        identity = _identity()
        async with _network(config, handler) as network:
            reply = await network.agent(identity).update(CANISTER, "icrc1_fee", {"x": 1})

        assert reply == 42
        assert seen["path"] == f"/api/v2/canister/{CANISTER}/call"

        body = seen["body"]
        content = body["content"]
        assert content["method_name"] == "icrc1_fee"
        assert content["arg"] == {"x": 1}
        assert content["sender"] == str(identity.principal)

        verifying = VerifyingKey.from_der(bytes.fromhex(body["sender_pubkey"]))
        assert verifying.verify(bytes.fromhex(body["sender_sig"]), request_digest(content))

    @pytest.mark.asyncio
    async def test_anonymous_query_unsigned(self, config):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "replied", "reply": None})

        async with _network(config, handler) as network:
            assert await network.anonymous().query(CANISTER, "icrc1_fee") is None

        assert seen["path"].endswith("/query")
        assert seen["body"]["sender_sig"] is None
        assert seen["body"]["content"]["sender"] == "2vxsx-fae"

    def test_digest_ignores_key_order(self):
        a = request_digest({"a": 1, "b": 2})
        b = request_digest({"b": 2, "a": 1})
        assert a == b
        assert a.startswith(b"\x0aic-request")


# ============================================================
# Error Mapping Tests
# ============================================================

class TestErrors:
    """Transport failures vs. explicit rejections."""

    @pytest.mark.asyncio
    async def test_rejected(self, config):
        def handler(request):
            return httpx.Response(200, json={
                "status": "rejected", "reject_code": 5, "reject_message": "trap",
            })

        async with _network(config, handler) as network:
            with pytest.raises(RemoteReject) as exc:
                await network.anonymous().query(CANISTER, "method")

        assert exc.value.code == 5
        assert exc.value.method == "method"
        assert "trap" in str(exc.value)

    @pytest.mark.asyncio
    async def test_server_error_is_network_error(self, config):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        async with _network(config, handler) as network:
            with pytest.raises(NetworkError):
                await network.anonymous().query(CANISTER, "method")

    @pytest.mark.asyncio
    async def test_client_error_is_reject(self, config):
        def handler(request):
            return httpx.Response(403, text="bad signature")

        async with _network(config, handler) as network:
            with pytest.raises(RemoteReject) as exc:
                await network.agent(_identity()).update(CANISTER, "method")
        assert exc.value.code == 403

    @pytest.mark.asyncio
    async def test_connection_error(self, config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _network(config, handler) as network:
            with pytest.raises(NetworkError) as exc:
                await network.anonymous().query(CANISTER, "method")
        assert "ConnectError" in str(exc.value)

    @pytest.mark.asyncio
    async def test_unreadable_body(self, config):
        def handler(request):
            return httpx.Response(200, text="<html>")

        async with _network(config, handler) as network:
            with pytest.raises(NetworkError):
                await network.anonymous().query(CANISTER, "method")

    @pytest.mark.asyncio
    async def test_unknown_status(self, config):
        def handler(request):
            return httpx.Response(200, json={"status": "processing"})

        async with _network(config, handler) as network:
            with pytest.raises(NetworkError):
                await network.anonymous().query(CANISTER, "method")
