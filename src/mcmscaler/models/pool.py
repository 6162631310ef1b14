# src/mcmscaler/models/pool.py
"""
Pydantic models identifying node groups (MachineDeployments) and the
machines that back them.
"""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class PoolRef(BaseModel):
    """
    Identity of a node group: the name and namespace of its MachineDeployment.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="MachineDeployment name")
    namespace: str = Field(..., description="MachineDeployment namespace")

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}"


class MachineRef(BaseModel):
    """Identity of a single Machine object."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Machine name")
    namespace: str = Field(..., description="Machine namespace")


class PoolStatus(BaseModel):
    """Point-in-time view of a node group, used for reporting."""

    name: str
    namespace: str
    min_size: int
    max_size: int
    target_size: int


class ResourceLimiter(BaseModel):
    """
    Cluster-wide minimum and maximum totals for resources such as cores and memory.
    """

    min_limits: Dict[str, int] = Field(default_factory=dict)
    max_limits: Dict[str, int] = Field(default_factory=dict)

    def get_min(self, resource: str) -> int:
        return self.min_limits.get(resource, 0)

    def get_max(self, resource: str) -> int:
        return self.max_limits.get(resource, 0)

    def get_resources(self):
        return sorted(set(self.min_limits) | set(self.max_limits))
