# src/mcmscaler/models/node_template.py
"""
Models describing the node a node group would provision, used to build
synthetic template nodes for groups that currently have no members.
"""

from enum import Enum
from typing import Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class TaintEffect(str, Enum):
    NO_SCHEDULE = "NoSchedule"
    PREFER_NO_SCHEDULE = "PreferNoSchedule"
    NO_EXECUTE = "NoExecute"


class Taint(BaseModel):
    """A node taint. Hashable so taint collections can be sets."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    effect: TaintEffect


class InstanceTypeInfo(BaseModel):
    """
    Capacity of the machine type a node group provisions.

    Attributes:
        instance_type: Provider machine type (e.g., 'm5.large', 'n1-standard-4')
        vcpu: Number of virtual CPUs
        memory_mb: Memory in MiB
        gpu: Number of GPUs
    """

    instance_type: str = Field(..., description="Machine type name")
    vcpu: int = Field(..., ge=0, description="Virtual CPUs")
    memory_mb: int = Field(..., ge=0, description="Memory in MiB")
    gpu: int = Field(default=0, ge=0, description="GPUs")


class NodeTemplate(BaseModel):
    """Template metadata of a node group, read from its MachineDeployment and MachineClass."""

    instance_type: InstanceTypeInfo
    region: str = ""
    zone: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict, description="Labels from the MachineDeployment node template")
    annotations: Dict[str, str] = Field(
        default_factory=dict, description="Annotations from the MachineDeployment node template"
    )
    taints: Set[Taint] = Field(default_factory=set, description="Taints from the MachineDeployment node template")
