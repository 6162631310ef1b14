# src/mcmscaler/cli/node_groups.py
"""
Node group commands: list configured groups, resize them, show their
template node and find the group owning a node.
"""

import asyncio
import logging

import typer
from kubernetes_asyncio.client import V1Node, V1NodeSpec, V1ObjectMeta
from typing_extensions import Annotated

from ..core.config import config
from ..core.exceptions import McmScalerError, RevertFailedError
from ..core.factory import get_cloud_provider
from ..models.pool import PoolStatus
from ..reporters.console_reporter import ConsoleReporter

logger = logging.getLogger(__name__)

app = typer.Typer(name="node-groups", help="Manage machine-controller-manager node groups.")


def _run(coro_factory):
    """
    Runs a coroutine against the configured provider and maps library errors to exit codes.
    """

    async def runner():
        provider = get_cloud_provider()
        try:
            return await coro_factory(provider)
        finally:
            await provider.cleanup()

    try:
        config.validate_instance()
        return asyncio.run(runner())
    except RevertFailedError as e:
        typer.secho(f"Node group left in an inconsistent state: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    except (McmScalerError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _lookup(provider, name: str):
    node_group = provider.find_node_group(name)
    if node_group is None:
        typer.secho(f"Unknown node group '{name}'.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return node_group


@app.command("list")
def list_node_groups():
    """
    Show every configured node group with its bounds and current target size.
    """

    async def collect(provider):
        statuses = []
        for node_group in provider.node_groups():
            statuses.append(
                PoolStatus(
                    name=node_group.name,
                    namespace=node_group.namespace,
                    min_size=node_group.min_size(),
                    max_size=node_group.max_size(),
                    target_size=await node_group.target_size(),
                )
            )
        return statuses

    statuses = _run(collect)
    ConsoleReporter().report(data=statuses)


@app.command("scale-up")
def scale_up(
    name: Annotated[str, typer.Argument(help="MachineDeployment name of the node group.")],
    delta: Annotated[int, typer.Option("--delta", "-d", help="Number of nodes to add.")] = 1,
):
    """
    Increase the size of a node group, reverting it if the machine type is unavailable.
    """

    async def increase(provider):
        await _lookup(provider, name).increase_size(delta)

    _run(increase)
    typer.echo(f"Node group '{name}' increased by {delta}.")


@app.command("scale-down")
def scale_down(
    name: Annotated[str, typer.Argument(help="MachineDeployment name of the node group.")],
    delta: Annotated[int, typer.Option("--delta", "-d", help="Number of unfulfilled node requests to retract.")] = 1,
):
    """
    Decrease the target size of a node group without deleting existing nodes.
    """

    async def decrease(provider):
        await _lookup(provider, name).decrease_target_size(-delta)

    _run(decrease)
    typer.echo(f"Node group '{name}' target size decreased by {delta}.")


@app.command("template")
def template(name: Annotated[str, typer.Argument(help="MachineDeployment name of the node group.")]):
    """
    Show the template node the scheduling simulator would use for a node group.
    """

    async def build(provider):
        return await _lookup(provider, name).template_node_info()

    info = _run(build)
    ConsoleReporter().report_template(info)


@app.command("owner")
def owner(provider_id: Annotated[str, typer.Argument(help="Provider ID of a node.")]):
    """
    Show which node group owns the node with the given provider ID.
    """
    node = V1Node(metadata=V1ObjectMeta(name=provider_id), spec=V1NodeSpec(provider_id=provider_id))

    async def resolve(provider):
        return await provider.node_group_for_node(node)

    node_group = _run(resolve)
    if node_group is None:
        typer.echo(f"{provider_id} is not managed by any configured node group.")
        return
    typer.echo(f"{provider_id} belongs to node group {node_group.debug()}.")
