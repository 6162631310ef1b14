# src/mcmscaler/provider/template.py
"""
Synthetic nodes for node groups that may have no live members.

The scheduling simulator uses these to decide whether scaling a group up
from zero would make pending pods schedulable.
"""

import random
from typing import List

from kubernetes_asyncio.client import (
    V1Container,
    V1Node,
    V1NodeCondition,
    V1NodeSpec,
    V1NodeStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1ResourceRequirements,
    V1Taint,
)
from pydantic import BaseModel, ConfigDict

from ..models.node_template import NodeTemplate
from ..utils.k8s_utils import MIB
from .labels import (
    LABEL_ZONE,
    LABEL_ZONE_LEGACY,
    build_generic_labels,
    extract_labels,
    extract_taints,
    resolve_zone,
)

DEFAULT_MAX_PODS = 110
GPU_RESOURCE = "nvidia.com/gpu"
KUBE_PROXY_CPU_REQUEST = "100m"


class TemplateNodeInfo(BaseModel):
    """A template node together with the pods every node of the group runs."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    node: V1Node
    pods: List[V1Pod]


def _random_suffix() -> int:
    return random.randint(0, 2**63 - 1)


def build_node_from_template(pool_name: str, template: NodeTemplate) -> V1Node:
    """
    Builds a Ready node shaped like the machines of a node group.

    Labels are the generic labels, then the template labels, then the
    node-template label annotations, each overriding the previous.
    """
    node_name = f"{pool_name}-{_random_suffix()}"

    capacity = {
        "pods": str(DEFAULT_MAX_PODS),
        "cpu": str(template.instance_type.vcpu),
        "memory": str(template.instance_type.memory_mb * MIB),
    }
    if template.instance_type.gpu:
        capacity[GPU_RESOURCE] = str(template.instance_type.gpu)

    labels = build_generic_labels(template, node_name)
    labels.update(template.labels)
    labels.update(extract_labels(template.annotations))

    zone = template.zone or resolve_zone(labels)
    if zone:
        labels[LABEL_ZONE] = zone
        labels[LABEL_ZONE_LEGACY] = zone

    taints = template.taints | extract_taints(template.annotations)

    return V1Node(
        metadata=V1ObjectMeta(name=node_name, labels=labels),
        spec=V1NodeSpec(
            taints=[
                V1Taint(key=t.key, value=t.value, effect=t.effect.value)
                for t in sorted(taints, key=lambda t: (t.key, t.value, t.effect.value))
            ]
        ),
        status=V1NodeStatus(
            capacity=capacity,
            allocatable=dict(capacity),
            conditions=[V1NodeCondition(type="Ready", status="True")],
        ),
    )


def build_kube_proxy(pool_name: str) -> V1Pod:
    """The kube-proxy mirror pod running on every node of a group."""
    return V1Pod(
        metadata=V1ObjectMeta(
            name=f"kube-proxy-{pool_name}-{_random_suffix()}",
            namespace="kube-system",
            annotations={"kubernetes.io/config.mirror": "1234567890ABCDEF"},
        ),
        spec=V1PodSpec(
            containers=[
                V1Container(
                    name="kube-proxy",
                    image="kube-proxy",
                    resources=V1ResourceRequirements(requests={"cpu": KUBE_PROXY_CPU_REQUEST}),
                )
            ]
        ),
    )


def build_template_node_info(pool_name: str, template: NodeTemplate) -> TemplateNodeInfo:
    return TemplateNodeInfo(
        node=build_node_from_template(pool_name, template),
        pods=[build_kube_proxy(pool_name)],
    )
