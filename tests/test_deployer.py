"""
Unit Tests for the SNS Deployer
===============================
Runs complete deployments against the fake replica and checks what a
failure at each kind of step leaves behind.

Run: python -m pytest tests/test_deployer.py -v
"""

import pytest

from snsctl.deployer import DeployStage, SnsDeployer
from snsctl.errors import (
    ConfigError,
    InconsistentState,
    NetworkError,
    SnsctlError,
    TimeoutWaitingForState,
)
from snsctl.polling import PollPolicy
from snsctl.records import load_record
from snsctl.sns_config import SnsParameters, load_logo

from fake_replica import NNS_MAX_DELAY, FakeSwap, deploy_suite

E8S = 100_000_000
FEE = 10_000


def _deployer(config, network, identities, params=None, report=None):
    return SnsDeployer(
        config, network, identities, params or SnsParameters(), load_logo(None),
        report=report or (lambda line: None),
    )


# ============================================================
# Successful Deployment Tests
# ============================================================

class TestDeployment:
    """Full runs."""

    @pytest.mark.asyncio
    async def test_full_deployment(self, config, network, identities, replica):
        record = await deploy_suite(config, network, identities)

        assert record.funding_neuron_id == 1001
        assert record.proposal_id == 1
        assert record.deployed_sns.governance == replica.suite_governance.canister
        assert record.deployed_sns.swap == replica.swap.canister
        assert record.owner_principal == str(identities.owner_identity().principal)
        assert len(record.participants) == 5
        assert replica.swap.lifecycle == FakeSwap.COMMITTED

    @pytest.mark.asyncio
    async def test_record_written(self, config, network, identities):
        record = await deploy_suite(config, network, identities)

        assert load_record(config.record_path) == record
        for index, participant in enumerate(record.participants, start=1):
            assert participant.seed_file == str(identities.seed_path(index))
            assert identities.seed_path(index).is_file()

    @pytest.mark.asyncio
    async def test_balances(self, config, network, identities, replica):
        record = await deploy_suite(config, network, identities)

        owner = record.owner_principal
        assert replica.ledger.balance(owner) == config.owner_funding_e8s
        for participant in record.participants:
            assert replica.ledger.balance(participant.principal) == (
                config.participant_funding_e8s - E8S - FEE
            )

    @pytest.mark.asyncio
    async def test_funding_neuron_locked_for_maximum(self, config, network, identities, replica):
        await deploy_suite(config, network, identities)

        neuron = replica.governance.neurons[1001]
        assert neuron["dissolve_state"] == {"DissolveDelaySeconds": NNS_MAX_DELAY}
        assert neuron["cached_neuron_stake_e8s"] == config.funding_neuron_e8s

    @pytest.mark.asyncio
    async def test_basket_neurons(self, config, network, identities, replica):
        record = await deploy_suite(config, network, identities)

        suite = replica.suite_governance
        owned = [
            n for n in suite.neurons.values()
            if n["permissions"][0]["principal"] == record.participants[0].principal
        ]
        assert len(owned) == 3
        assert {n["cached_neuron_stake_e8s"] for n in owned} == {133_333_333}

    @pytest.mark.asyncio
    async def test_stages_and_progress_lines(self, config, network, identities):
        lines = []
        deployer = _deployer(config, network, identities, report=lines.append)

        await deployer.run()

        assert deployer.stage is DeployStage.RECORDED
        assert lines[0] == "[deploy] Deploying AcmeDAO on local"
        assert "[deploy] Funding neuron: 1001" in lines
        assert lines[-1].startswith("[deploy] Done.")

    @pytest.mark.asyncio
    async def test_transient_poll_errors_are_retried(self, config, network, identities, replica):
        replica.fail("get_deployed_sns_by_proposal_id", times=2)
        record = await deploy_suite(config, network, identities)
        assert record.proposal_id == 1

    @pytest.mark.asyncio
    async def test_custom_commitment(self, config, network, identities, replica):
        config.participant_commitment_e8s = 2 * E8S
        record = await deploy_suite(config, network, identities)
        assert replica.swap.participation[record.participants[0].principal] == 2 * E8S


# ============================================================
# Static Check Tests
# ============================================================

class TestAmountChecks:
    """Bad amounts fail in INIT, before any call."""

    def test_funding_below_commitment(self, config, network, identities, replica):
        config.participant_funding_e8s = E8S
        with pytest.raises(ConfigError) as exc:
            _deployer(config, network, identities)
        assert exc.value.step == "init"
        assert replica.calls == []

    def test_commitment_outside_range(self, config, network, identities):
        config.participant_commitment_e8s = 50 * E8S
        with pytest.raises(ConfigError):
            _deployer(config, network, identities)

    def test_too_few_participants(self, config, network, identities):
        config.participant_count = 3
        with pytest.raises(ConfigError) as exc:
            _deployer(config, network, identities)
        assert "minimum of 5" in str(exc.value)

    def test_total_outside_direct_range(self, config, network, identities):
        params = SnsParameters(minimum_direct_participation_icp_e8s=20 * E8S)
        with pytest.raises(ConfigError):
            _deployer(config, network, identities, params=params)

    @pytest.mark.asyncio
    async def test_missing_owner_identity(self, config, network, identities, replica, owner_pem):
        owner_pem.unlink()
        with pytest.raises(SnsctlError) as exc:
            await deploy_suite(config, network, identities)
        assert exc.value.step == "load identities"
        assert replica.calls == []


# ============================================================
# Failure Tests
# ============================================================

class TestFailures:
    """Failures name the step, the last stage and what was confirmed."""

    @pytest.mark.asyncio
    async def test_transfer_failure_not_retried(self, config, network, identities, replica):
        replica.fail("icrc1_transfer")

        with pytest.raises(NetworkError) as exc:
            await deploy_suite(config, network, identities)

        assert exc.value.step == "create funding neuron"
        assert exc.value.last_state == "INIT"
        assert len(replica.calls_to("icrc1_transfer")) == 1
        assert replica.calls_to("manage_neuron") == []
        assert not config.record_path.exists()

    @pytest.mark.asyncio
    async def test_execution_timeout(self, config, network, identities, replica):
        replica.snsw.polls_before_ready = 100

        with pytest.raises(TimeoutWaitingForState) as exc:
            await deploy_suite(config, network, identities)

        error = exc.value
        assert error.step == "await proposal execution"
        assert error.last_state == "AWAITING_EXECUTION"
        assert error.progress["proposal_id"] == 1
        assert error.progress["funding_neuron_id"] == 1001
        assert "[await proposal execution]" in str(error)
        assert not config.record_path.exists()

    @pytest.mark.asyncio
    async def test_swap_never_opens(self, config, network, identities):
        config.swap_open_poll = PollPolicy(0, 1)

        with pytest.raises(TimeoutWaitingForState) as exc:
            await deploy_suite(config, network, identities)

        assert exc.value.step == "await swap open"
        assert exc.value.last_state == "AWAITING_SWAP_OPEN"
        assert exc.value.last_observed == "ADOPTED"
        assert len(exc.value.progress["participants"]) == 5

    @pytest.mark.asyncio
    async def test_aborted_swap(self, config, network, identities, replica, monkeypatch):
        create_suite = replica.create_suite

        def create_aborted(proposal_id, payload):
            create_suite(proposal_id, payload)
            replica.swap.lifecycle = FakeSwap.ABORTED

        monkeypatch.setattr(replica, "create_suite", create_aborted)

        with pytest.raises(InconsistentState) as exc:
            await deploy_suite(config, network, identities)
        assert exc.value.step == "await swap open"
        assert replica.calls_to("new_sale_ticket") == []

    @pytest.mark.asyncio
    async def test_participation_failure_stops_run(self, config, network, identities, replica):
        replica.fail("refresh_buyer_tokens")

        with pytest.raises(NetworkError) as exc:
            await deploy_suite(config, network, identities)

        assert exc.value.step == "participate"
        assert exc.value.last_state == "PARTICIPATING"
        states = [p["state"] for p in exc.value.progress["participants"]]
        assert states[0] == "transferred"
        assert set(states[1:]) == {"pending"}
        assert replica.calls_to("finalize_swap") == []

    @pytest.mark.asyncio
    async def test_record_write_failure(self, config, network, identities, replica):
        config.record_path.mkdir(parents=True)

        with pytest.raises(SnsctlError) as exc:
            await deploy_suite(config, network, identities)

        assert exc.value.step == "write record"
        assert exc.value.last_state == "FINALIZED"
        assert replica.swap.lifecycle == FakeSwap.COMMITTED
