"""
Unit Tests for the CLI
======================
Invokes snsctl commands through click's CliRunner with the fake replica
as transport.

Run: python -m pytest tests/test_cli.py -v
"""

import json
import logging

import pytest
from click.testing import CliRunner

from snsctl.cli import cli


@pytest.fixture(autouse=True)
def restore_logging():
    """setup_logging replaces the root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def invoke(config, replica):
    runner = CliRunner()
    transport = replica.transport()

    def run(*args, **kwargs):
        return runner.invoke(
            cli, list(args), obj={"config": config, "transport": transport}, **kwargs
        )
    return run


# ============================================================
# Deployment Commands
# ============================================================

class TestDeployCommands:

    def test_check_deployed_without_record(self, invoke):
        result = invoke("check-deployed")
        assert result.exit_code == 1
        assert "not deployed" in result.output

    def test_deploy_then_check(self, invoke, config):
        result = invoke("deploy")
        assert result.exit_code == 0, result.output
        assert "[deploy] Funding neuron: 1001" in result.output
        assert "[OK] SNS deployed" in result.output
        assert config.record_path.is_file()

        result = invoke("check-deployed")
        assert result.exit_code == 0
        assert "deployed" in result.output

    def test_deploy_failure_reports_step(self, invoke, replica, config):
        replica.fail("icrc1_transfer")

        result = invoke("deploy")

        assert result.exit_code == 1
        assert "Error: [create funding neuron]" in result.output
        assert "(last state: INIT)" in result.output
        assert not config.record_path.exists()


# ============================================================
# Neuron Commands
# ============================================================

class TestNeuronCommands:

    def test_list_neurons(self, invoke):
        assert invoke("deploy").exit_code == 0

        result = invoke("list-neurons", "base")
        assert result.exit_code == 0, result.output
        assert "Neuron ID: 1001" in result.output

        result = invoke("list-neurons", "sns", "--json")
        assert result.exit_code == 0, result.output
        neurons = json.loads(result.output)
        assert [n["dissolve_delay_seconds"] for n in neurons] == [0, 2592000, 5184000]

    def test_no_neurons(self, invoke):
        result = invoke("list-neurons", "base")
        assert result.exit_code == 0, result.output
        assert "No neurons found." in result.output

    def test_base_hotkey_permissions_rejected(self, invoke, identities, replica):
        hotkey = str(identities.derive_participant(1).principal)

        result = invoke("add-hotkey", "base", "--hotkey", hotkey, "--permissions", "3,4")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert replica.calls == []

    def test_bad_permission_value(self, invoke, identities):
        hotkey = str(identities.derive_participant(1).principal)
        result = invoke("add-hotkey", "suite", "--hotkey", hotkey, "--permissions", "3,x")
        assert result.exit_code == 1
        assert "Invalid permission" in result.output

    def test_get_balance(self, invoke, replica, identities):
        owner = identities.owner_identity().principal
        replica.ledger.credit(str(owner), None, 12345)

        result = invoke("get-balance", "icp")

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "12345"

    def test_bad_principal(self, invoke):
        result = invoke("get-balance", "base", "--principal", "nope")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_mint_prompts_for_missing_options(self, invoke, identities):
        receiver = str(identities.derive_participant(1).principal)

        result = invoke("mint", "base", input=f"{receiver}\n100000000\n")

        assert result.exit_code == 0, result.output
        assert f"[OK] Minted 100000000 e8s to {receiver}" in result.output

    def test_suite_mint_waits_for_execution(self, invoke, identities):
        assert invoke("deploy").exit_code == 0
        receiver = str(identities.derive_participant(9).principal)

        result = invoke("mint", "sns", "--receiver", receiver, "--amount", "100000000")
        assert result.exit_code == 0, result.output
        assert "executed: minted 100000000 e8s" in result.output

        result = invoke("get-balance", "sns", "--principal", receiver)
        assert result.output.strip() == "100000000"

    def test_set_dissolving(self, invoke):
        assert invoke("deploy").exit_code == 0

        result = invoke("set-dissolving", "base", "start")
        assert result.exit_code == 0, result.output
        assert "[OK] Started dissolving 1001" in result.output

        result = invoke("get-neuron-info")
        assert result.exit_code == 0, result.output
        assert "Dissolving" in result.output

    def test_unknown_family(self, invoke):
        result = invoke("list-neurons", "btc")
        assert result.exit_code == 2
