# src/mcmscaler/provider/machine_deployment.py
"""
A node group backed by a machine-controller-manager MachineDeployment.

The group's size lives in MachineDeployment.spec.replicas and is reconciled
by MCM. Nothing about the size is cached here: every operation reads the
object fresh and writes absolute replica counts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Tuple

from kubernetes_asyncio.client import V1Node

from ..core.exceptions import (
    AlreadyExistsError,
    BoundsExceededError,
    CapacityUnavailableError,
    FloorReachedError,
    InvalidArgumentError,
    McmScalerError,
    MismatchedPoolError,
    RevertFailedError,
    StoreWriteError,
    WouldDeleteRunningNodesError,
)
from ..models.pool import MachineRef, PoolRef
from .base import NodeGroup
from .mcm_manager import McmManager, is_machine_type_unavailable
from .reference import reference_from_provider_id
from .template import TemplateNodeInfo, build_template_node_info

logger = logging.getLogger(__name__)

DEFAULT_SCALE_UP_GRACE_PERIOD = 5.0


class MachineDeployment(NodeGroup):
    """
    Node group over one MachineDeployment.

    Args:
        manager: Access to the MCM resources.
        ref: Name and namespace of the MachineDeployment.
        min_size: Lower bound of the group size.
        max_size: Upper bound of the group size.
        grace_period: Seconds to wait after a scale-up before checking whether
            MCM flagged the machine type as unavailable.
        sleep: Coroutine used for that wait.
    """

    def __init__(
        self,
        manager: McmManager,
        ref: PoolRef,
        min_size: int,
        max_size: int,
        grace_period: float = DEFAULT_SCALE_UP_GRACE_PERIOD,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.manager = manager
        self.ref = ref
        self._min_size = min_size
        self._max_size = max_size
        self.grace_period = grace_period
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def namespace(self) -> str:
        return self.ref.namespace

    def min_size(self) -> int:
        return self._min_size

    def max_size(self) -> int:
        return self._max_size

    def id(self) -> str:
        return self.ref.name

    def debug(self) -> str:
        return f"{self.id()} ({self.min_size()}:{self.max_size()})"

    def __repr__(self) -> str:
        return f"MachineDeployment({self.ref}, {self.min_size()}:{self.max_size()})"

    async def target_size(self) -> int:
        return await self.manager.get_machine_deployment_size(self.ref)

    async def increase_size(self, delta: int) -> None:
        """
        Raises the desired size by delta and verifies MCM can provision it.

        After the write the group waits for the grace period and re-reads the
        MachineDeployment. If MCM marked the machine type as unavailable in the
        meantime, the size recorded before the increase is written back.

        Raises:
            InvalidArgumentError: If delta is not positive.
            BoundsExceededError: If the new size would exceed max_size.
            CapacityUnavailableError: If the machine type is, or becomes, unavailable.
            RevertFailedError: If rolling back a failed scale-up failed.
        """
        if delta <= 0:
            raise InvalidArgumentError("size increase must be positive")

        machine_deployment = await self.manager.get_machine_deployment(self.ref)
        size = int(machine_deployment.get("spec", {}).get("replicas") or 0)
        if size + delta > self.max_size():
            raise BoundsExceededError(f"size increase too large - desired:{size + delta} max:{self.max_size()}")

        if is_machine_type_unavailable(machine_deployment):
            raise CapacityUnavailableError(
                f"machine type of node group {self.id()!r} is not available in the cloud, skipping scale-up"
            )

        await self.manager.set_machine_deployment_size(self.ref, size + delta)
        logger.info("Increased node group %s from %d to %d", self.id(), size, size + delta)

        await self._sleep(self.grace_period)

        machine_deployment = await self.manager.get_machine_deployment(self.ref)
        if not is_machine_type_unavailable(machine_deployment):
            return

        logger.warning(
            "Machine type of node group %s became unavailable after scale-up, reverting size to %d", self.id(), size
        )
        try:
            await self.manager.set_machine_deployment_size(self.ref, size)
        except StoreWriteError as e:
            raise RevertFailedError(f"failed to revert the size of node group {self.id()!r} to {size}: {e}") from e
        raise CapacityUnavailableError(
            f"machine type of node group {self.id()!r} is not available in the cloud, scale-up reverted"
        )

    async def decrease_target_size(self, delta: int) -> None:
        """
        Lowers the desired size without touching machines that already exist.

        Raises:
            InvalidArgumentError: If delta is not negative.
            BoundsExceededError: If the new size would fall below min_size.
            WouldDeleteRunningNodesError: If the new size is below the number of existing machines.
        """
        if delta >= 0:
            raise InvalidArgumentError("size decrease must be negative")

        size = await self.manager.get_machine_deployment_size(self.ref)
        if size + delta < self.min_size():
            raise BoundsExceededError(f"size decrease too large - desired:{size + delta} min:{self.min_size()}")
        nodes = await self.manager.get_machine_deployment_nodes(self.ref)
        if size + delta < len(nodes):
            raise WouldDeleteRunningNodesError(
                f"attempt to delete existing nodes targetSize:{size} delta:{delta} existingNodes:{len(nodes)}"
            )

        await self.manager.set_machine_deployment_size(self.ref, size + delta)
        logger.info("Decreased target size of node group %s from %d to %d", self.id(), size, size + delta)

    async def belongs(self, node: V1Node) -> bool:
        """
        Whether a node is backed by a machine of this group.

        Raises:
            MismatchedPoolError: If the node cannot be attributed to any known MachineDeployment.
        """
        _, owner = await self._resolve_node(node)
        return owner == self.ref

    async def _resolve_node(self, node: V1Node) -> Tuple[MachineRef, PoolRef]:
        """Returns the machine backing a node and the MachineDeployment owning it."""
        provider_id = node.spec.provider_id if node.spec else None
        if not provider_id:
            raise MismatchedPoolError(f"node {node.metadata.name} has no provider ID")

        machine_ref = await reference_from_provider_id(self.manager, provider_id)
        if machine_ref is None:
            raise MismatchedPoolError(f"node {node.metadata.name} is not backed by a known machine")

        owner = await self.manager.get_machine_deployment_for_machine(machine_ref)
        if owner is None:
            raise MismatchedPoolError(f"node {node.metadata.name} doesn't belong to a known MachineDeployment")
        return machine_ref, owner

    async def delete_nodes(self, nodes: List[V1Node]) -> None:
        """
        Deletes nodes of this group and lowers its size accordingly.

        All nodes are validated before anything is deleted.

        Raises:
            FloorReachedError: If the group is already at or below min_size.
            MismatchedPoolError: If any node does not belong to this group.
        """
        size = await self.manager.get_machine_deployment_size(self.ref)
        if size <= self.min_size():
            raise FloorReachedError(f"min size of node group {self.id()!r} reached, nodes will not be deleted")

        machines = []
        for node in nodes:
            try:
                machine_ref, owner = await self._resolve_node(node)
            except McmScalerError as e:
                raise MismatchedPoolError(f"cannot verify that {node.metadata.name} belongs to {self.id()}: {e}") from e
            if owner != self.ref:
                raise MismatchedPoolError(
                    f"{node.metadata.name} belongs to a different MachineDeployment than {self.id()}"
                )
            machines.append(machine_ref)

        await self.manager.delete_machines(machines)
        logger.info("Deleted %d node(s) from node group %s", len(machines), self.id())

    async def nodes(self) -> List[str]:
        return await self.manager.get_machine_deployment_nodes(self.ref)

    async def template_node_info(self) -> TemplateNodeInfo:
        """
        Raises:
            TemplateUnavailableError: If the group's machine class defines no node template.
        """
        template = await self.manager.get_machine_deployment_node_template(self.ref)
        return build_template_node_info(self.name, template)

    async def create(self) -> NodeGroup:
        raise AlreadyExistsError(f"node group {self.id()!r} already exists")
