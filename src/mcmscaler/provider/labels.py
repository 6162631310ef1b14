# src/mcmscaler/provider/labels.py
"""
Scheduling metadata derived from a node group's node template.

Custom labels and taints are declared as annotations on the MachineDeployment
node template using the cluster-autoscaler node-template prefixes, e.g.

    k8s.io/cluster-autoscaler/node-template/label/team: ml
    k8s.io/cluster-autoscaler/node-template/taint/dedicated: gpu:NoSchedule
"""

import logging
from typing import Dict, Mapping, Set

from ..models.node_template import NodeTemplate, Taint, TaintEffect

logger = logging.getLogger(__name__)

LABEL_PREFIX = "k8s.io/cluster-autoscaler/node-template/label/"
TAINT_PREFIX = "k8s.io/cluster-autoscaler/node-template/taint/"

LABEL_HOSTNAME = "kubernetes.io/hostname"
LABEL_ZONE = "topology.kubernetes.io/zone"
LABEL_ZONE_LEGACY = "failure-domain.beta.kubernetes.io/zone"
LABEL_REGION = "topology.kubernetes.io/region"
LABEL_REGION_LEGACY = "failure-domain.beta.kubernetes.io/region"
LABEL_INSTANCE_TYPE = "node.kubernetes.io/instance-type"
LABEL_INSTANCE_TYPE_LEGACY = "beta.kubernetes.io/instance-type"
LABEL_ARCH = "kubernetes.io/arch"
LABEL_ARCH_LEGACY = "beta.kubernetes.io/arch"
LABEL_OS = "kubernetes.io/os"
LABEL_OS_LEGACY = "beta.kubernetes.io/os"

DEFAULT_ARCH = "amd64"
DEFAULT_OS = "linux"


def build_generic_labels(template: NodeTemplate, node_name: str) -> Dict[str, str]:
    """
    Labels every node of the group carries regardless of its annotations.
    """
    instance_type = template.instance_type.instance_type
    return {
        LABEL_ARCH: DEFAULT_ARCH,
        LABEL_ARCH_LEGACY: DEFAULT_ARCH,
        LABEL_OS: DEFAULT_OS,
        LABEL_OS_LEGACY: DEFAULT_OS,
        LABEL_INSTANCE_TYPE: instance_type,
        LABEL_INSTANCE_TYPE_LEGACY: instance_type,
        LABEL_REGION: template.region,
        LABEL_REGION_LEGACY: template.region,
        LABEL_HOSTNAME: node_name,
    }


def extract_labels(annotations: Mapping[str, str]) -> Dict[str, str]:
    """Returns the labels declared through node-template label annotations."""
    return {
        key[len(LABEL_PREFIX) :]: value
        for key, value in (annotations or {}).items()
        if key.startswith(LABEL_PREFIX)
    }


def extract_taints(annotations: Mapping[str, str]) -> Set[Taint]:
    """
    Returns the taints declared through node-template taint annotations.

    Values must look like '<value>:<effect>'. Malformed entries are skipped.
    """
    taints = set()
    for key, raw in (annotations or {}).items():
        if not key.startswith(TAINT_PREFIX):
            continue
        taint_key = key[len(TAINT_PREFIX) :]
        value, sep, effect = (raw or "").partition(":")
        if not sep or not value:
            logger.debug("Skipping malformed taint annotation %s=%r", key, raw)
            continue
        try:
            taints.add(Taint(key=taint_key, value=value, effect=TaintEffect(effect)))
        except ValueError:
            logger.debug("Skipping taint annotation %s with unknown effect %r", key, effect)
    return taints


def resolve_zone(labels: Mapping[str, str]) -> str:
    """Zone of a label set: the topology label first, then the legacy failure-domain label."""
    return labels.get(LABEL_ZONE) or labels.get(LABEL_ZONE_LEGACY) or ""
