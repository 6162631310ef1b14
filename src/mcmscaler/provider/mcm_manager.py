# src/mcmscaler/provider/mcm_manager.py
"""
Access to the machine-controller-manager custom resources (MachineDeployment,
MachineSet, Machine and MachineClass) through the Kubernetes API.

Every read goes to the API server; nothing is cached because MCM mutates these
objects concurrently.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple, Type

import aiohttp
from kubernetes_asyncio.client.rest import ApiException

from ..core.config import config as global_config
from ..core.exceptions import (
    ListFailureError,
    MismatchedPoolError,
    StoreError,
    StoreReadError,
    StoreWriteError,
    TemplateUnavailableError,
)
from ..core.k8s_client import get_custom_objects_api
from ..models.node_template import InstanceTypeInfo, NodeTemplate, Taint, TaintEffect
from ..models.pool import MachineRef, PoolRef
from ..utils.k8s_utils import quantity_to_cores, quantity_to_mib

logger = logging.getLogger(__name__)

# Put by MCM on the MachineDeployment node template when the machine type cannot be provisioned.
MACHINE_TYPE_NOT_AVAILABLE_ANNOTATION = "machine.sapcloud.io/machine-type-not-available"

# Machines with a higher priority value are deleted last when a MachineDeployment scales down.
MACHINE_PRIORITY_ANNOTATION = "machinepriority.machine.sapcloud.io"
MACHINE_PRIORITY_DELETE_FIRST = "1"

MACHINE_DEPLOYMENTS = "machinedeployments"
MACHINE_SETS = "machinesets"
MACHINES = "machines"

# Failures of the API server connection itself, as opposed to error responses.
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)

MERGE_PATCH = "application/merge-patch+json"


def node_template_annotations(machine_deployment: Dict[str, Any]) -> Dict[str, str]:
    """Annotations of the node template of a MachineDeployment object."""
    node_template = machine_deployment.get("spec", {}).get("template", {}).get("spec", {}).get("nodeTemplate") or {}
    return (node_template.get("metadata") or {}).get("annotations") or {}


def is_machine_type_unavailable(machine_deployment: Dict[str, Any]) -> bool:
    return node_template_annotations(machine_deployment).get(MACHINE_TYPE_NOT_AVAILABLE_ANNOTATION) == "True"


def _owner_name(obj: Dict[str, Any], kind: str) -> Optional[str]:
    for owner in obj.get("metadata", {}).get("ownerReferences") or []:
        if owner.get("kind") == kind:
            return owner.get("name")
    return None


def _class_plural(kind: str) -> str:
    # MachineClass -> machineclasses, AWSMachineClass -> awsmachineclasses
    return f"{kind.lower()}es"


class McmManager:
    """
    Reads and writes machine-controller-manager resources on behalf of the node groups.
    """

    def __init__(self, namespace: Optional[str] = None, api=None):
        self.namespace = namespace or global_config.MCM_NAMESPACE
        self.group = global_config.MCM_API_GROUP
        self.version = global_config.MCM_API_VERSION
        self._api = api

    async def _ensure_client(self, error: Type[StoreError]):
        """
        Lazily initialize the Kubernetes Async client using the centralized thread-safe loader.

        Raises:
            error: If no Kubernetes configuration could be loaded.
        """
        if self._api:
            return self._api

        self._api = await get_custom_objects_api()
        if not self._api:
            raise error("Kubernetes client not configured; cannot reach machine-controller-manager.")
        return self._api

    # The helpers below translate connection failures into store errors and let
    # ApiException through, so callers can act on the response status.

    async def _get(self, plural: str, namespace: str, name: str) -> Dict[str, Any]:
        api = await self._ensure_client(StoreReadError)
        try:
            return await api.get_namespaced_custom_object(self.group, self.version, namespace, plural, name)
        except TRANSPORT_ERRORS as e:
            raise StoreReadError(f"Unable to reach the API server to fetch {plural} {namespace}/{name}: {e!r}") from e

    async def _patch(self, plural: str, namespace: str, name: str, body: Dict[str, Any]) -> None:
        api = await self._ensure_client(StoreWriteError)
        try:
            await api.patch_namespaced_custom_object(
                self.group, self.version, namespace, plural, name, body, _content_type=MERGE_PATCH
            )
        except TRANSPORT_ERRORS as e:
            raise StoreWriteError(f"Unable to reach the API server to patch {plural} {namespace}/{name}: {e!r}") from e

    async def _list(self, plural: str, namespace: str) -> List[Dict[str, Any]]:
        api = await self._ensure_client(ListFailureError)
        try:
            result = await api.list_namespaced_custom_object(self.group, self.version, namespace, plural)
        except TRANSPORT_ERRORS as e:
            raise ListFailureError(f"Unable to reach the API server to list {plural} in {namespace}: {e!r}") from e
        return result.get("items") or []

    async def get_machine_deployment(self, ref: PoolRef) -> Dict[str, Any]:
        try:
            return await self._get(MACHINE_DEPLOYMENTS, ref.namespace, ref.name)
        except ApiException as e:
            raise StoreReadError(f"Unable to fetch MachineDeployment {ref}: {e.reason}") from e

    async def get_machine_deployment_size(self, ref: PoolRef) -> int:
        machine_deployment = await self.get_machine_deployment(ref)
        return int(machine_deployment.get("spec", {}).get("replicas") or 0)

    async def set_machine_deployment_size(self, ref: PoolRef, size: int) -> None:
        """Writes an absolute replica count to the MachineDeployment."""
        try:
            await self._patch(MACHINE_DEPLOYMENTS, ref.namespace, ref.name, {"spec": {"replicas": size}})
        except ApiException as e:
            raise StoreWriteError(f"Unable to set size of MachineDeployment {ref} to {size}: {e.reason}") from e
        logger.info("Set replicas of MachineDeployment %s to %d", ref, size)

    async def list_machines(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            return await self._list(MACHINES, namespace or self.namespace)
        except ApiException as e:
            raise ListFailureError(f"Could not list machines due to error: {e.reason}") from e

    async def get_machine_deployment_for_machine(self, ref: MachineRef) -> Optional[PoolRef]:
        """
        Follows Machine -> MachineSet -> MachineDeployment owner references.

        Returns None when any link of the chain is missing.
        """
        _, owner = await self._resolve_owner(ref)
        return owner

    async def _resolve_owner(self, ref: MachineRef) -> Tuple[Optional[Dict[str, Any]], Optional[PoolRef]]:
        """Returns the machine object together with its owning MachineDeployment."""
        try:
            machine = await self._get(MACHINES, ref.namespace, ref.name)
            machine_set_name = _owner_name(machine, "MachineSet")
            if not machine_set_name:
                logger.debug("Machine %s/%s has no owning MachineSet", ref.namespace, ref.name)
                return machine, None
            machine_set = await self._get(MACHINE_SETS, ref.namespace, machine_set_name)
        except ApiException as e:
            if e.status == 404:
                logger.debug("Owner chain of machine %s/%s vanished: %s", ref.namespace, ref.name, e.reason)
                return None, None
            raise StoreReadError(f"Unable to resolve owner of machine {ref.namespace}/{ref.name}: {e.reason}") from e

        machine_deployment_name = _owner_name(machine_set, "MachineDeployment")
        if not machine_deployment_name:
            return machine, None
        return machine, PoolRef(name=machine_deployment_name, namespace=ref.namespace)

    async def get_machine_deployment_nodes(self, ref: PoolRef) -> List[str]:
        """
        Provider IDs of the machines owned by a MachineDeployment.

        Machines without a provider ID have not been created in the cloud yet and are not counted.
        """
        try:
            machine_sets = await self._list(MACHINE_SETS, ref.namespace)
        except ApiException as e:
            raise ListFailureError(f"Could not list machine sets due to error: {e.reason}") from e
        owned_sets = {
            ms["metadata"]["name"] for ms in machine_sets if _owner_name(ms, "MachineDeployment") == ref.name
        }

        nodes = []
        for machine in await self.list_machines(ref.namespace):
            if _owner_name(machine, "MachineSet") not in owned_sets:
                continue
            provider_id = machine.get("spec", {}).get("providerID")
            if provider_id:
                nodes.append(provider_id)
        return nodes

    async def get_machine_deployment_node_template(self, ref: PoolRef) -> NodeTemplate:
        """
        Builds the node template of a MachineDeployment from its node template
        metadata and the nodeTemplate section of its MachineClass.
        """
        machine_deployment = await self.get_machine_deployment(ref)
        machine_spec = machine_deployment.get("spec", {}).get("template", {}).get("spec", {})
        class_ref = machine_spec.get("class") or {}
        if not class_ref.get("name"):
            raise TemplateUnavailableError(f"MachineDeployment {ref} does not reference a machine class")

        kind = class_ref.get("kind") or "MachineClass"
        try:
            machine_class = await self._get(_class_plural(kind), ref.namespace, class_ref["name"])
        except ApiException as e:
            if e.status == 404:
                raise TemplateUnavailableError(f"{kind} {class_ref['name']} of {ref} not found") from e
            raise StoreReadError(f"Unable to fetch {kind} {class_ref['name']}: {e.reason}") from e

        class_template = machine_class.get("nodeTemplate") or {}
        if not class_template.get("instanceType"):
            raise TemplateUnavailableError(f"{kind} {class_ref['name']} of {ref} defines no instance type")

        capacity = class_template.get("capacity") or {}
        node_template = machine_spec.get("nodeTemplate") or {}
        metadata = node_template.get("metadata") or {}
        taints = set()
        for taint in (node_template.get("spec") or {}).get("taints") or []:
            try:
                taints.add(Taint(key=taint["key"], value=taint.get("value") or "", effect=TaintEffect(taint["effect"])))
            except (KeyError, ValueError):
                logger.warning("Ignoring invalid taint %r on MachineDeployment %s", taint, ref)

        return NodeTemplate(
            instance_type=InstanceTypeInfo(
                instance_type=class_template["instanceType"],
                vcpu=quantity_to_cores(capacity.get("cpu")),
                memory_mb=quantity_to_mib(capacity.get("memory")),
                gpu=quantity_to_cores(capacity.get("gpu")),
            ),
            region=class_template.get("region") or "",
            zone=class_template.get("zone"),
            labels=metadata.get("labels") or {},
            annotations=metadata.get("annotations") or {},
            taints=taints,
        )

    async def delete_machines(self, refs: List[MachineRef]) -> None:
        """
        Deletes machines of one MachineDeployment by marking them to be removed
        first and lowering the replica count by their number in a single write.

        If any write fails, the machines already marked get their previous
        priority back before the error is raised.
        """
        if not refs:
            return

        owners = set()
        previous_priorities: Dict[MachineRef, Optional[str]] = {}
        for ref in refs:
            machine, owner = await self._resolve_owner(ref)
            owners.add(owner)
            annotations = ((machine or {}).get("metadata") or {}).get("annotations") or {}
            previous_priorities[ref] = annotations.get(MACHINE_PRIORITY_ANNOTATION)
        if len(owners) != 1 or None in owners:
            raise MismatchedPoolError(
                f"Machines to delete do not share one MachineDeployment: {sorted(map(str, owners))}"
            )
        pool_ref = owners.pop()

        marked = []
        try:
            for ref in refs:
                await self._set_machine_priority(ref, MACHINE_PRIORITY_DELETE_FIRST)
                marked.append(ref)
                logger.debug("Marked machine %s/%s for deletion", ref.namespace, ref.name)

            size = await self.get_machine_deployment_size(pool_ref)
            await self.set_machine_deployment_size(pool_ref, max(size - len(refs), 0))
        except StoreError:
            await self._restore_priorities(marked, previous_priorities)
            raise
        logger.info("Deleted %d machine(s) from MachineDeployment %s", len(refs), pool_ref)

    async def _set_machine_priority(self, ref: MachineRef, priority: Optional[str]) -> None:
        # A null value removes the annotation under merge-patch semantics.
        body = {"metadata": {"annotations": {MACHINE_PRIORITY_ANNOTATION: priority}}}
        try:
            await self._patch(MACHINES, ref.namespace, ref.name, body)
        except ApiException as e:
            raise StoreWriteError(
                f"Unable to set deletion priority of machine {ref.namespace}/{ref.name}: {e.reason}"
            ) from e

    async def _restore_priorities(self, refs: List[MachineRef], priorities: Dict[MachineRef, Optional[str]]) -> None:
        for ref in refs:
            try:
                await self._set_machine_priority(ref, priorities.get(ref))
            except StoreWriteError as e:
                logger.error("Machine %s/%s is left marked for deletion: %s", ref.namespace, ref.name, e)
            else:
                logger.debug("Restored deletion priority of machine %s/%s", ref.namespace, ref.name)

    async def close(self):
        """Close the Kubernetes API client if it exists."""
        if self._api:
            await self._api.api_client.close()
            logger.debug("McmManager Kubernetes client closed.")
            self._api = None
