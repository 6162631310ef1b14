# src/mcmscaler/provider/base.py
"""
This module defines the abstract interfaces the autoscaling decision loop
talks to. Node groups and cloud providers implement them explicitly so test
doubles only need to provide the capability surface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from kubernetes_asyncio.client import V1Node

from ..core.exceptions import NotImplementedByProviderError
from ..models.pool import ResourceLimiter


class NodeGroup(ABC):
    """
    A set of nodes of the same shape whose size is managed as one unit.
    """

    @abstractmethod
    def min_size(self) -> int:
        pass

    @abstractmethod
    def max_size(self) -> int:
        pass

    @abstractmethod
    async def target_size(self) -> int:
        """
        The desired size of the group. It may differ from the number of
        nodes registered in Kubernetes.
        """
        pass

    @abstractmethod
    async def increase_size(self, delta: int) -> None:
        pass

    @abstractmethod
    async def decrease_target_size(self, delta: int) -> None:
        """
        Retract requests for nodes that have not been provisioned yet.
        Never deletes existing nodes. Delta must be negative.
        """
        pass

    @abstractmethod
    async def belongs(self, node: V1Node) -> bool:
        pass

    @abstractmethod
    async def delete_nodes(self, nodes: List[V1Node]) -> None:
        pass

    @abstractmethod
    def id(self) -> str:
        pass

    @abstractmethod
    def debug(self) -> str:
        pass

    @abstractmethod
    async def nodes(self) -> List[str]:
        """Provider IDs of the machines in this group."""
        pass

    @abstractmethod
    async def template_node_info(self):
        pass

    def exist(self) -> bool:
        return True

    def autoprovisioned(self) -> bool:
        return False

    async def create(self) -> "NodeGroup":
        raise NotImplementedByProviderError(f"creating node group {self.id()!r} is not supported")

    async def delete(self) -> None:
        raise NotImplementedByProviderError(f"deleting node group {self.id()!r} is not supported")


class CloudProvider(ABC):
    """
    Source of node groups for the autoscaling decision loop.
    """

    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def node_groups(self) -> List[NodeGroup]:
        pass

    @abstractmethod
    async def node_group_for_node(self, node: V1Node) -> Optional[NodeGroup]:
        """
        The node group owning a node, or None when the node is not managed
        by this provider.
        """
        pass

    @abstractmethod
    def get_resource_limiter(self) -> ResourceLimiter:
        pass

    async def refresh(self) -> None:
        """Called before every decision loop iteration."""
        pass

    async def cleanup(self) -> None:
        """
        Clean up resources (e.g., close API clients).
        """
        pass
