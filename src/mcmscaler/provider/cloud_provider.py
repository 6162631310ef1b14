# src/mcmscaler/provider/cloud_provider.py
"""
Cloud provider exposing statically configured MachineDeployments as node groups.

Node groups are configured with specs of the form

    minSize:maxSize:namespace.machineDeploymentName
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from kubernetes_asyncio.client import V1Node

from ..core.exceptions import ConfigParseError, NotImplementedByProviderError
from ..models.pool import PoolRef, ResourceLimiter
from .base import CloudProvider, NodeGroup
from .machine_deployment import DEFAULT_SCALE_UP_GRACE_PERIOD, MachineDeployment
from .mcm_manager import McmManager
from .reference import reference_from_provider_id

logger = logging.getLogger(__name__)


def parse_node_group_spec(spec: str) -> Tuple[int, int, PoolRef]:
    """
    Parses 'min:max:namespace.name'.

    Raises:
        ConfigParseError: If the spec is malformed or its bounds are inconsistent.
    """
    tokens = spec.strip().split(":")
    if len(tokens) != 3:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: expected minSize:maxSize:namespace.name")

    try:
        min_size, max_size = int(tokens[0]), int(tokens[1])
    except ValueError as e:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: sizes must be integers") from e

    if min_size < 0:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: min size must be >= 0")
    if max_size < 1:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: max size must be >= 1")
    if max_size < min_size:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: max size must be >= min size")

    namespace, _, name = tokens[2].partition(".")
    if not namespace or not name:
        raise ConfigParseError(f"failed to parse node group spec {spec!r}: name must be namespace.name")

    return min_size, max_size, PoolRef(name=name, namespace=namespace)


class McmCloudProvider(CloudProvider):
    """
    Registry of the node groups managed through machine-controller-manager.
    """

    def __init__(
        self,
        manager: McmManager,
        resource_limiter: Optional[ResourceLimiter] = None,
        grace_period: float = DEFAULT_SCALE_UP_GRACE_PERIOD,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.manager = manager
        self.resource_limiter = resource_limiter or ResourceLimiter()
        self.grace_period = grace_period
        self._sleep = sleep
        self._machine_deployments: Dict[PoolRef, MachineDeployment] = {}

    def add_node_group(self, spec: str) -> MachineDeployment:
        min_size, max_size, ref = parse_node_group_spec(spec)
        if ref in self._machine_deployments:
            raise ConfigParseError(f"node group {ref} is configured more than once")

        machine_deployment = MachineDeployment(
            self.manager, ref, min_size, max_size, grace_period=self.grace_period, sleep=self._sleep
        )
        self._machine_deployments[ref] = machine_deployment
        logger.info("Registered node group %s", machine_deployment.debug())
        return machine_deployment

    def name(self) -> str:
        return "machine-controller-manager"

    def node_groups(self) -> List[NodeGroup]:
        return list(self._machine_deployments.values())

    def get_node_group(self, ref: PoolRef) -> Optional[MachineDeployment]:
        return self._machine_deployments.get(ref)

    def find_node_group(self, name: str) -> Optional[MachineDeployment]:
        """Looks a node group up by MachineDeployment name alone."""
        for ref, machine_deployment in self._machine_deployments.items():
            if ref.name == name:
                return machine_deployment
        return None

    async def node_group_for_node(self, node: V1Node) -> Optional[NodeGroup]:
        provider_id = node.spec.provider_id if node.spec else None
        if not provider_id:
            logger.warning("Node %s has no providerID", node.metadata.name)
            return None

        machine_ref = await reference_from_provider_id(self.manager, provider_id)
        if machine_ref is None:
            logger.info("Skipped node %s, not managed by this controller", provider_id)
            return None

        owner = await self.manager.get_machine_deployment_for_machine(machine_ref)
        if owner is None:
            return None
        return self._machine_deployments.get(owner)

    def pricing(self):
        raise NotImplementedByProviderError("pricing is not available for machine-controller-manager")

    def get_available_machine_types(self) -> List[str]:
        return []

    def new_node_group(self, machine_type: str, labels: dict, system_labels: dict, taints: list, extra_resources: dict):
        raise NotImplementedByProviderError("node group auto-provisioning is not supported")

    def get_resource_limiter(self) -> ResourceLimiter:
        return self.resource_limiter

    async def cleanup(self) -> None:
        await self.manager.close()


def build_mcm_cloud_provider(
    manager: McmManager,
    specs: Iterable[str],
    resource_limiter: Optional[ResourceLimiter] = None,
    grace_period: float = DEFAULT_SCALE_UP_GRACE_PERIOD,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> McmCloudProvider:
    """
    Builds a provider with one node group per spec.

    Raises:
        ConfigParseError: If no spec is given or any spec is invalid.
    """
    specs = list(specs)
    if not specs:
        raise ConfigParseError("failed to build an mcm cloud provider: no node group specs given")

    provider = McmCloudProvider(manager, resource_limiter, grace_period=grace_period, sleep=sleep)
    for spec in specs:
        provider.add_node_group(spec)
    return provider
