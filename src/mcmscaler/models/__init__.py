from .node_template import InstanceTypeInfo, NodeTemplate, Taint, TaintEffect
from .pool import MachineRef, PoolRef, PoolStatus, ResourceLimiter

__all__ = [
    "InstanceTypeInfo",
    "MachineRef",
    "NodeTemplate",
    "PoolRef",
    "PoolStatus",
    "ResourceLimiter",
    "Taint",
    "TaintEffect",
]
