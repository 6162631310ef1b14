from .base import CloudProvider, NodeGroup
from .cloud_provider import McmCloudProvider, build_mcm_cloud_provider, parse_node_group_spec
from .machine_deployment import MachineDeployment
from .mcm_manager import McmManager

__all__ = [
    "CloudProvider",
    "MachineDeployment",
    "McmCloudProvider",
    "McmManager",
    "NodeGroup",
    "build_mcm_cloud_provider",
    "parse_node_group_spec",
]
