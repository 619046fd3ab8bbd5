"""
Unit Tests for Commands
=======================
Tests default resolution (identity, neuron) and each command against a
deployment on the fake replica.

Run: python -m pytest tests/test_commands.py -v
"""

import hashlib

import pytest

from snsctl.commands import Commands
from snsctl.errors import ConfigError, InvalidArgument
from snsctl.neurons import (
    DissolveState,
    LedgerFamily,
    Proposal,
    ProposalOutcome,
    Visibility,
)
from snsctl.wallet import KeyPair, neuron_subaccount

from fake_replica import deploy_suite

E8S = 100_000_000
FEE = 10_000
DAY = 24 * 60 * 60
BASKET_STAKE = 133_333_333

BASE = LedgerFamily.BASE
SUITE = LedgerFamily.SUITE


async def _deployed(config, network, identities):
    record = await deploy_suite(config, network, identities)
    return Commands(config, network, identities), record


def _basket_id(principal: str, index: int) -> str:
    return hashlib.sha256(f"{principal}-{index}".encode()).hexdigest()


# ============================================================
# Resolution Tests
# ============================================================

class TestResolution:
    """Who acts and on which neuron when nothing is named."""

    @pytest.mark.asyncio
    async def test_suite_needs_record(self, config, network, identities):
        commands = Commands(config, network, identities)
        with pytest.raises(ConfigError):
            await commands.list_neurons(SUITE)

    @pytest.mark.asyncio
    async def test_default_identities(self, config, network, identities):
        commands, record = await _deployed(config, network, identities)

        assert commands.default_identity(BASE) is identities.owner_identity()
        first = commands.default_identity(SUITE)
        assert str(first.principal) == record.participants[0].principal

    @pytest.mark.asyncio
    async def test_unknown_principal_cannot_sign(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        stranger = str(KeyPair.from_seed(bytes(32)).principal)
        with pytest.raises(InvalidArgument):
            await commands.set_dissolving(SUITE, start=True, principal=stranger)

    @pytest.mark.asyncio
    async def test_suite_listing_needs_no_identity(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        stranger = str(KeyPair.from_seed(bytes(32)).principal)
        assert await commands.list_neurons(SUITE, stranger) == []

    @pytest.mark.asyncio
    async def test_malformed_principal(self, config, network, identities, replica):
        commands = Commands(config, network, identities)
        with pytest.raises(InvalidArgument):
            await commands.get_balance(BASE, "not-a-principal")
        assert replica.calls == []


# ============================================================
# Base Command Tests
# ============================================================

class TestBaseCommands:
    """Owner-side commands on the base governance."""

    @pytest.mark.asyncio
    async def test_list_owner_neurons(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        neurons = await commands.list_neurons(BASE)
        assert [n.id for n in neurons] == [1001]

    @pytest.mark.asyncio
    async def test_neuron_info_defaults_to_funding_neuron(self, config, network, identities):
        commands, record = await _deployed(config, network, identities)
        neuron = await commands.get_neuron_info()
        assert neuron.id == 1001
        assert neuron.controller == record.owner_principal

    @pytest.mark.asyncio
    async def test_visibility_and_dissolving(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)

        await commands.set_visibility(True)
        await commands.set_dissolving(BASE, start=True, neuron_id="1001")

        neuron = await commands.get_neuron_info("1001")
        assert neuron.visibility is Visibility.PUBLIC
        assert neuron.dissolve_state is DissolveState.DISSOLVING

    @pytest.mark.asyncio
    async def test_hotkey_permissions_rejected_before_network(self, config, network, identities,
                                                              replica):
        commands = Commands(config, network, identities)
        hotkey = str(identities.derive_participant(1).principal)
        with pytest.raises(InvalidArgument):
            await commands.add_hotkey(BASE, hotkey, permissions=[3, 4])
        assert replica.calls == []

    @pytest.mark.asyncio
    async def test_balance_and_mint(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        assert await commands.get_balance(BASE) == config.owner_funding_e8s

        receiver = str(identities.owner_identity().principal)
        block = await commands.mint(BASE, receiver, 3 * E8S)
        assert isinstance(block, int)
        assert await commands.get_balance(BASE) == config.owner_funding_e8s + 3 * E8S

    @pytest.mark.asyncio
    async def test_base_mint_takes_no_proposer(self, config, network, identities):
        commands = Commands(config, network, identities)
        owner = str(identities.owner_identity().principal)
        with pytest.raises(InvalidArgument):
            await commands.mint(BASE, owner, E8S, proposer=owner)

    @pytest.mark.asyncio
    async def test_create_neuron_validates_amount(self, config, network, identities, replica):
        commands = Commands(config, network, identities)
        with pytest.raises(InvalidArgument):
            await commands.create_neuron(BASE, amount=0)
        assert replica.calls == []


# ============================================================
# Suite Command Tests
# ============================================================

class TestSuiteCommands:
    """Participant-side commands on the deployed suite."""

    @pytest.mark.asyncio
    async def test_list_basket_neurons(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)

        neurons = await commands.list_neurons(SUITE)

        assert [n.stake_e8s for n in neurons] == [BASKET_STAKE] * 3
        assert [n.dissolve_delay_seconds for n in neurons] == [0, 30 * DAY, 60 * DAY]

    @pytest.mark.asyncio
    async def test_increase_delay_of_main_neuron(self, config, network, identities):
        commands, record = await _deployed(config, network, identities)

        target = await commands.increase_dissolve_delay(SUITE, DAY)

        assert target == _basket_id(record.participants[0].principal, 2)
        delays = [n.dissolve_delay_seconds for n in await commands.list_neurons(SUITE)]
        assert delays == [0, 30 * DAY, 61 * DAY]

    @pytest.mark.asyncio
    async def test_disburse_unlocked_neuron(self, config, network, identities):
        commands, record = await _deployed(config, network, identities)
        unlocked = _basket_id(record.participants[0].principal, 0)

        await commands.disburse_neuron(SUITE, neuron_id=unlocked)

        assert await commands.get_balance(SUITE) == BASKET_STAKE - FEE

    @pytest.mark.asyncio
    async def test_add_hotkey_to_main_neuron(self, config, network, identities):
        commands, record = await _deployed(config, network, identities)
        hotkey = record.participants[1].principal

        target = await commands.add_hotkey(SUITE, hotkey)

        neurons = await commands.list_neurons(SUITE, hotkey)
        shared = [n for n in neurons if n.id == target]
        assert shared[0].permissions[hotkey] == [3, 4]

    @pytest.mark.asyncio
    async def test_hotkey_outside_record_lists_neuron(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        hotkey = str(KeyPair.from_seed(bytes(range(32))).principal)

        target = await commands.add_hotkey(SUITE, hotkey, permissions=[3, 4])

        neurons = await commands.list_neurons(SUITE, hotkey)
        assert [n.id for n in neurons] == [target]
        assert neurons[0].permissions[hotkey] == [3, 4]

    @pytest.mark.asyncio
    async def test_mint_then_stake(self, config, network, identities, replica):
        """MintSnsTokens is voted through by the participants; the tokens can then be staked."""
        commands, record = await _deployed(config, network, identities)
        first = record.participants[0].principal

        proposal = await commands.mint(SUITE, first, 5 * E8S)
        assert isinstance(proposal, Proposal)
        assert proposal.outcome is ProposalOutcome.EXECUTED
        # MakeProposal plus a vote from every other neuron of 30 days or more
        suite_calls = [
            c for c in replica.calls_to("manage_neuron")
            if c[0] == replica.suite_governance.canister
        ]
        assert len(suite_calls) == 10
        assert await commands.get_balance(SUITE) == 5 * E8S

        neuron_id = await commands.create_neuron(SUITE, amount=2 * E8S)
        owner = commands.default_identity(SUITE).principal
        assert neuron_id == neuron_subaccount(owner, 4).hex()
        assert len(await commands.list_neurons(SUITE)) == 4


# ============================================================
# check_deployed Tests
# ============================================================

class TestCheckDeployed:

    @pytest.mark.asyncio
    async def test_no_record(self, config, network, identities, replica):
        commands = Commands(config, network, identities)
        assert await commands.check_deployed() is False
        assert replica.calls == []

    @pytest.mark.asyncio
    async def test_deployed(self, config, network, identities):
        commands, _ = await _deployed(config, network, identities)
        assert await commands.check_deployed() is True

    @pytest.mark.asyncio
    async def test_record_from_another_replica(self, config, network, identities, replica):
        commands, _ = await _deployed(config, network, identities)
        replica.snsw.deployed.clear()
        assert await commands.check_deployed() is False
