"""
snsctl CLI
==========
Deploy a local SNS and operate on its neurons.

Usage:
    snsctl deploy
    snsctl list-neurons base
    snsctl create-neuron suite --amount 200000000 --dissolve-delay 2592000
    snsctl add-hotkey suite --hotkey <principal> --permissions 3,4
    snsctl mint base --receiver <principal> --amount 100000000
    snsctl check-deployed
"""

import asyncio
import json
import sys
from typing import Awaitable, Callable, Optional

import click

from .commands import Commands
from .config import Config
from .errors import SnsctlError
from .logging_config import setup_logging
from .neurons import DissolveState, LedgerFamily, NeuronRef, Proposal, parse_permissions
from .rpc import Network

FAMILY = click.Choice(["base", "suite", "icp", "sns"], case_sensitive=False)


def _family(value: str) -> LedgerFamily:
    return LedgerFamily.parse(value)


def _config(ctx: click.Context) -> Config:
    if ctx.obj.get("config") is None:
        ctx.obj["config"] = Config.from_env()
    return ctx.obj["config"]


def _run(ctx: click.Context, action: Callable[[Commands], Awaitable]):
    """Run one command against a fresh Network; SnsctlErrors become exit code 1."""
    async def go():
        config = _config(ctx)
        async with Network(config, transport=ctx.obj.get("transport")) as network:
            return await action(Commands(config, network))

    try:
        return asyncio.run(go())
    except SnsctlError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        for key, value in e.progress.items():
            click.echo(f"  {key}: {json.dumps(value)}", err=True)
        sys.exit(1)


def _format_delay(neuron: NeuronRef) -> str:
    if neuron.dissolve_state is None:
        return "No delay"
    if neuron.dissolve_state is DissolveState.DISSOLVED:
        return "Dissolved"
    seconds = neuron.dissolve_delay_seconds or 0
    text = f"{seconds // 86400}d {(seconds % 86400) // 3600}h"
    if neuron.dissolve_state is DissolveState.DISSOLVING:
        return f"Dissolving ({text} left)"
    return text


def _echo_neuron(index: int, neuron: NeuronRef) -> None:
    click.echo(
        f"  {index}: Neuron ID: {neuron.id}, Stake: {neuron.stake_e8s} e8s, "
        f"Dissolve Delay: {_format_delay(neuron)}"
    )


@click.group()
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
@click.option("--verbose", "-v", is_flag=True, help="Shortcut for --log-level INFO.")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], verbose: bool) -> None:
    """Deploy and operate a local SNS."""
    ctx.ensure_object(dict)
    if verbose and not log_level:
        log_level = "INFO"
    setup_logging(log_level)


@cli.command()
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy the SNS, run its swap and write the deployment record."""
    record = _run(ctx, lambda commands: commands.deploy())
    click.secho("[OK] SNS deployed", fg="green")
    click.echo(json.dumps(record.to_dict(), indent=2))


@cli.command("add-hotkey")
@click.argument("family", type=FAMILY)
@click.option("--hotkey", prompt="Hotkey principal", help="Principal to add.")
@click.option("--principal", default=None, help="Neuron owner (default: owner / first participant).")
@click.option("--neuron", "neuron_id", default=None, help="Neuron id (default: main neuron).")
@click.option("--permissions", default=None, help="Suite only: comma-separated, e.g. 3,4.")
@click.pass_context
def add_hotkey(ctx, family, hotkey, principal, neuron_id, permissions) -> None:
    """Add a hotkey (base) or permissions (suite) to a neuron."""
    async def action(commands: Commands):
        return await commands.add_hotkey(
            _family(family), hotkey, principal, neuron_id, parse_permissions(permissions)
        )
    target = _run(ctx, action)
    click.secho(f"[OK] Hotkey {hotkey} added to neuron {target}", fg="green")


@cli.command("list-neurons")
@click.argument("family", type=FAMILY)
@click.option("--principal", default=None)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_neurons(ctx, family, principal, as_json) -> None:
    """List a principal's neurons, shortest dissolve delay first."""
    neurons = _run(ctx, lambda commands: commands.list_neurons(_family(family), principal))
    if as_json:
        click.echo(json.dumps([
            {
                "id": n.id,
                "stake_e8s": n.stake_e8s,
                "dissolve_state": n.dissolve_state.value if n.dissolve_state else None,
                "dissolve_delay_seconds": n.dissolve_delay_seconds,
            }
            for n in neurons
        ], indent=2))
        return
    if not neurons:
        click.echo("No neurons found.")
        return
    for index, neuron in enumerate(neurons, start=1):
        _echo_neuron(index, neuron)


@cli.command("create-neuron")
@click.argument("family", type=FAMILY)
@click.option("--principal", default=None)
@click.option("--amount", type=int, default=None, help="e8s to stake (default: whole balance).")
@click.option("--memo", type=int, default=None)
@click.option("--dissolve-delay", type=int, default=None, help="Seconds.")
@click.pass_context
def create_neuron(ctx, family, principal, amount, memo, dissolve_delay) -> None:
    """Stake tokens into a new neuron."""
    neuron_id = _run(ctx, lambda commands: commands.create_neuron(
        _family(family), principal, amount, memo, dissolve_delay
    ))
    click.secho(f"[OK] Neuron created: {neuron_id}", fg="green")


@cli.command("disburse-neuron")
@click.argument("family", type=FAMILY)
@click.option("--principal", default=None)
@click.option("--neuron", "neuron_id", default=None)
@click.option("--receiver", default=None, help="Default: the neuron owner.")
@click.option("--amount", type=int, default=None, help="e8s (default: everything).")
@click.option("--subaccount", default=None, help="Receiver subaccount (hex).")
@click.pass_context
def disburse_neuron(ctx, family, principal, neuron_id, receiver, amount, subaccount) -> None:
    """Disburse a dissolved neuron."""
    block = _run(ctx, lambda commands: commands.disburse_neuron(
        _family(family), principal, neuron_id, receiver, amount, subaccount
    ))
    click.secho(f"[OK] Disbursed (block {block})", fg="green")


@cli.command()
@click.argument("family", type=FAMILY)
@click.option("--receiver", prompt="Receiver principal")
@click.option("--amount", type=int, prompt="Amount (e8s)")
@click.option("--proposer", default=None, help="Suite only (default: first participant).")
@click.option("--subaccount", default=None)
@click.pass_context
def mint(ctx, family, receiver, amount, proposer, subaccount) -> None:
    """Mint tokens: minting transfer (base) or proposal + votes (suite)."""
    result = _run(ctx, lambda commands: commands.mint(
        _family(family), receiver, amount, proposer, subaccount
    ))
    if isinstance(result, Proposal):
        click.secho(
            f"[OK] Proposal {result.id} {result.outcome.value}: minted {amount} e8s to {receiver}",
            fg="green",
        )
    else:
        click.secho(f"[OK] Minted {amount} e8s to {receiver} (block {result})", fg="green")


@cli.command("set-visibility")
@click.argument("visibility", type=click.Choice(["public", "private"]))
@click.option("--principal", default=None)
@click.option("--neuron", "neuron_id", default=None)
@click.pass_context
def set_visibility(ctx, visibility, principal, neuron_id) -> None:
    """Make a base neuron public or private."""
    target = _run(ctx, lambda commands: commands.set_visibility(
        visibility == "public", principal, neuron_id
    ))
    click.secho(f"[OK] Neuron {target} is now {visibility}", fg="green")


@cli.command("get-neuron-info")
@click.option("--neuron", "neuron_id", default=None)
@click.option("--principal", default=None)
@click.pass_context
def get_neuron_info(ctx, neuron_id, principal) -> None:
    """Show one base neuron."""
    neuron = _run(ctx, lambda commands: commands.get_neuron_info(neuron_id, principal))
    click.echo(f"Neuron ID:      {neuron.id}")
    click.echo(f"Controller:     {neuron.controller}")
    click.echo(f"Stake:          {neuron.stake_e8s} e8s")
    click.echo(f"Dissolve delay: {_format_delay(neuron)}")
    click.echo(f"Hotkeys:        {', '.join(neuron.hotkeys) or '-'}")
    if neuron.visibility is not None:
        click.echo(f"Visibility:     {neuron.visibility.name.lower()}")


@cli.command("increase-dissolve-delay")
@click.argument("family", type=FAMILY)
@click.option("--seconds", type=int, prompt="Additional dissolve delay (seconds)")
@click.option("--principal", default=None)
@click.option("--neuron", "neuron_id", default=None)
@click.pass_context
def increase_dissolve_delay(ctx, family, seconds, principal, neuron_id) -> None:
    """Add to a neuron's dissolve delay."""
    target = _run(ctx, lambda commands: commands.increase_dissolve_delay(
        _family(family), seconds, principal, neuron_id
    ))
    click.secho(f"[OK] Dissolve delay of {target} increased by {seconds}s", fg="green")


@cli.command("set-dissolving")
@click.argument("family", type=FAMILY)
@click.argument("action", type=click.Choice(["start", "stop"]))
@click.option("--principal", default=None)
@click.option("--neuron", "neuron_id", default=None)
@click.pass_context
def set_dissolving(ctx, family, action, principal, neuron_id) -> None:
    """Start or stop dissolving a neuron."""
    target = _run(ctx, lambda commands: commands.set_dissolving(
        _family(family), action == "start", principal, neuron_id
    ))
    verb = "Started" if action == "start" else "Stopped"
    click.secho(f"[OK] {verb} dissolving {target}", fg="green")


@cli.command("get-balance")
@click.argument("family", type=FAMILY)
@click.option("--principal", default=None)
@click.option("--subaccount", default=None)
@click.pass_context
def get_balance(ctx, family, principal, subaccount) -> None:
    """Ledger balance of a principal, in e8s."""
    balance = _run(ctx, lambda commands: commands.get_balance(
        _family(family), principal, subaccount
    ))
    click.echo(balance)


@cli.command("check-deployed")
@click.pass_context
def check_deployed(ctx) -> None:
    """Exit 0 if the recorded SNS is deployed, 1 otherwise."""
    deployed = _run(ctx, lambda commands: commands.check_deployed())
    click.echo("deployed" if deployed else "not deployed")
    sys.exit(0 if deployed else 1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
