"""
Shared Fixtures
===============
A Config pointing at a temporary output directory, zero-interval polls,
an owner PEM on disk and a fake replica behind httpx.MockTransport.
"""

import pytest
from ecdsa import SECP256k1, SigningKey

from snsctl.config import CANISTERS, MINTING_PEM, Config
from snsctl.identity import IdentityManager
from snsctl.polling import PollPolicy
from snsctl.rpc import Network

from fake_replica import FakeReplica


@pytest.fixture
def owner_pem(tmp_path):
    """A secp256k1 dfx-style identity PEM."""
    key = SigningKey.from_secret_exponent(0x5EED, curve=SECP256k1)
    path = tmp_path / "dfx" / "identity" / "default" / "identity.pem"
    path.parent.mkdir(parents=True)
    path.write_bytes(key.to_pem())
    return path


@pytest.fixture
def config(tmp_path, owner_pem):
    return Config(
        network="local",
        replica_url="http://replica.test",
        request_timeout=5.0,
        dfx_config_dir=tmp_path / "dfx",
        identity_name="default",
        owner_pem_path=owner_pem,
        minting_pem=MINTING_PEM,
        canisters=dict(CANISTERS["local"]),
        output_dir=tmp_path / "generated",
        execution_poll=PollPolicy(0, 5),
        swap_open_poll=PollPolicy(0, 5),
        threshold_poll=PollPolicy(0, 5),
        finalize_poll=PollPolicy(0, 5),
        proposal_poll=PollPolicy(0, 5),
    )


@pytest.fixture
def identities(config):
    return IdentityManager(config)


@pytest.fixture
def replica(config, identities):
    return FakeReplica(config, identities.minting_identity().principal)


@pytest.fixture
def network(config, replica):
    return Network(config, transport=replica.transport())
