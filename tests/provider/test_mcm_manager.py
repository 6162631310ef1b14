# tests/provider/test_mcm_manager.py

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import aiohttp
import pytest
from kubernetes_asyncio.client import ApiClient, CustomObjectsApi
from kubernetes_asyncio.client.rest import ApiException

from mcmscaler.core.exceptions import (
    ListFailureError,
    MismatchedPoolError,
    RevertFailedError,
    StoreReadError,
    StoreWriteError,
    TemplateUnavailableError,
)
from mcmscaler.models.node_template import Taint, TaintEffect
from mcmscaler.models.pool import MachineRef, PoolRef
from mcmscaler.provider.machine_deployment import MachineDeployment
from mcmscaler.provider.mcm_manager import (
    MACHINE_PRIORITY_ANNOTATION,
    MACHINE_TYPE_NOT_AVAILABLE_ANNOTATION,
    MERGE_PATCH,
    McmManager,
    is_machine_type_unavailable,
)

GROUP = "machine.sapcloud.io"
VERSION = "v1alpha1"
NAMESPACE = "shoot--dev--test"
POOL = PoolRef(name="worker-pool", namespace=NAMESPACE)


def patch_call(plural, name, body):
    return call(GROUP, VERSION, NAMESPACE, plural, name, body, _content_type=MERGE_PATCH)


def priority(value):
    return {"metadata": {"annotations": {MACHINE_PRIORITY_ANNOTATION: value}}}


def owned_by(kind, name):
    return [{"kind": kind, "name": name}]


def make_machine(name, machine_set, provider_id=None):
    spec = {"providerID": provider_id} if provider_id else {}
    return {
        "metadata": {"name": name, "namespace": NAMESPACE, "ownerReferences": owned_by("MachineSet", machine_set)},
        "spec": spec,
    }


def make_machine_set(name, machine_deployment):
    return {
        "metadata": {
            "name": name,
            "namespace": NAMESPACE,
            "ownerReferences": owned_by("MachineDeployment", machine_deployment),
        }
    }


MACHINE_DEPLOYMENT = {
    "metadata": {"name": "worker-pool", "namespace": NAMESPACE},
    "spec": {
        "replicas": 3,
        "template": {
            "spec": {
                "class": {"kind": "MachineClass", "name": "worker-pool-class"},
                "nodeTemplate": {
                    "metadata": {
                        "labels": {"pool": "worker"},
                        "annotations": {"k8s.io/cluster-autoscaler/node-template/label/team": "ml"},
                    },
                    "spec": {"taints": [{"key": "spot", "value": "true", "effect": "NoSchedule"}]},
                },
            }
        },
    },
}

MACHINE_CLASS = {
    "metadata": {"name": "worker-pool-class", "namespace": NAMESPACE},
    "nodeTemplate": {
        "instanceType": "m5.large",
        "region": "eu-west-1",
        "zone": "eu-west-1a",
        "capacity": {"cpu": "2", "memory": "8Gi", "gpu": "0"},
    },
}

OBJECTS = {
    ("machinedeployments", "worker-pool"): MACHINE_DEPLOYMENT,
    ("machineclasses", "worker-pool-class"): MACHINE_CLASS,
    ("machines", "worker-pool-abc-1"): make_machine("worker-pool-abc-1", "worker-pool-abc", "aws:///a/i-1"),
    ("machines", "worker-pool-abc-2"): make_machine("worker-pool-abc-2", "worker-pool-abc", "aws:///a/i-2"),
    ("machines", "gpu-pool-xyz-1"): make_machine("gpu-pool-xyz-1", "gpu-pool-xyz", "aws:///a/i-3"),
    ("machines", "orphan"): {"metadata": {"name": "orphan", "namespace": NAMESPACE}, "spec": {}},
    ("machinesets", "worker-pool-abc"): make_machine_set("worker-pool-abc", "worker-pool"),
    ("machinesets", "gpu-pool-xyz"): make_machine_set("gpu-pool-xyz", "gpu-pool"),
}


@pytest.fixture
def mock_api():
    """Mock of the Kubernetes CustomObjectsApi serving the objects above."""
    api = MagicMock()

    async def get_object(group, version, namespace, plural, name):
        try:
            return OBJECTS[(plural, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found")

    async def list_objects(group, version, namespace, plural):
        return {"items": [obj for (kind, _), obj in OBJECTS.items() if kind == plural]}

    api.get_namespaced_custom_object = AsyncMock(side_effect=get_object)
    api.list_namespaced_custom_object = AsyncMock(side_effect=list_objects)
    api.patch_namespaced_custom_object = AsyncMock()
    api.api_client.close = AsyncMock()
    return api


@pytest.fixture
def manager(mock_api):
    return McmManager(namespace=NAMESPACE, api=mock_api)


def test_namespace_defaults_to_config():
    assert McmManager().namespace == NAMESPACE


def test_is_machine_type_unavailable():
    flagged = {
        "spec": {
            "template": {
                "spec": {"nodeTemplate": {"metadata": {"annotations": {MACHINE_TYPE_NOT_AVAILABLE_ANNOTATION: "True"}}}}
            }
        }
    }

    assert is_machine_type_unavailable(flagged) is True
    assert is_machine_type_unavailable(MACHINE_DEPLOYMENT) is False
    assert is_machine_type_unavailable({}) is False


async def test_get_machine_deployment_size(manager, mock_api):
    assert await manager.get_machine_deployment_size(POOL) == 3
    mock_api.get_namespaced_custom_object.assert_awaited_once_with(
        GROUP, VERSION, NAMESPACE, "machinedeployments", "worker-pool"
    )


async def test_get_machine_deployment_read_error(manager, mock_api):
    mock_api.get_namespaced_custom_object.side_effect = ApiException(status=500, reason="Internal Server Error")

    with pytest.raises(StoreReadError):
        await manager.get_machine_deployment(POOL)


async def test_set_machine_deployment_size(manager, mock_api):
    await manager.set_machine_deployment_size(POOL, 4)

    mock_api.patch_namespaced_custom_object.assert_awaited_once_with(
        GROUP,
        VERSION,
        NAMESPACE,
        "machinedeployments",
        "worker-pool",
        {"spec": {"replicas": 4}},
        _content_type=MERGE_PATCH,
    )


async def test_set_machine_deployment_size_write_error(manager, mock_api):
    mock_api.patch_namespaced_custom_object.side_effect = ApiException(status=409, reason="Conflict")

    with pytest.raises(StoreWriteError):
        await manager.set_machine_deployment_size(POOL, 4)


async def test_list_machines_failure(manager, mock_api):
    mock_api.list_namespaced_custom_object.side_effect = ApiException(status=403, reason="Forbidden")

    with pytest.raises(ListFailureError) as exc_info:
        await manager.list_machines()

    assert isinstance(exc_info.value.__cause__, ApiException)


async def test_client_not_configured(mocker):
    mocker.patch("mcmscaler.provider.mcm_manager.get_custom_objects_api", AsyncMock(return_value=None))

    with pytest.raises(StoreReadError):
        await McmManager(namespace=NAMESPACE).get_machine_deployment(POOL)


async def test_client_not_configured_for_lists_and_writes(mocker):
    mocker.patch("mcmscaler.provider.mcm_manager.get_custom_objects_api", AsyncMock(return_value=None))

    with pytest.raises(ListFailureError):
        await McmManager(namespace=NAMESPACE).list_machines()
    with pytest.raises(StoreWriteError):
        await McmManager(namespace=NAMESPACE).set_machine_deployment_size(POOL, 4)


async def test_patch_is_sent_as_merge_patch():
    api_client = ApiClient()
    api_client.call_api = AsyncMock(return_value={})
    manager = McmManager(namespace=NAMESPACE, api=CustomObjectsApi(api_client))

    try:
        await manager.set_machine_deployment_size(POOL, 4)
    finally:
        await api_client.close()

    sent = api_client.call_api.await_args
    headers = next(
        value for value in [*sent.args, *sent.kwargs.values()] if isinstance(value, dict) and "Content-Type" in value
    )
    assert headers["Content-Type"] == "application/merge-patch+json"


# --- Connection failures ---


@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("connection reset"), asyncio.TimeoutError()])
async def test_read_connection_failure(manager, mock_api, error):
    mock_api.get_namespaced_custom_object.side_effect = error

    with pytest.raises(StoreReadError) as exc_info:
        await manager.get_machine_deployment(POOL)

    assert exc_info.value.__cause__ is error


@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("connection reset"), asyncio.TimeoutError()])
async def test_write_connection_failure(manager, mock_api, error):
    mock_api.patch_namespaced_custom_object.side_effect = error

    with pytest.raises(StoreWriteError) as exc_info:
        await manager.set_machine_deployment_size(POOL, 4)

    assert exc_info.value.__cause__ is error


@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("connection reset"), asyncio.TimeoutError()])
async def test_list_connection_failure(manager, mock_api, error):
    mock_api.list_namespaced_custom_object.side_effect = error

    with pytest.raises(ListFailureError) as exc_info:
        await manager.get_machine_deployment_nodes(POOL)

    assert exc_info.value.__cause__ is error


async def test_revert_connection_failure_is_revert_failure(manager, mock_api, mocker):
    mocker.patch.dict(OBJECTS)

    async def mcm_flags_machine_type(seconds):
        OBJECTS[("machinedeployments", "worker-pool")] = {
            "metadata": MACHINE_DEPLOYMENT["metadata"],
            "spec": {
                "replicas": 4,
                "template": {
                    "spec": {
                        "nodeTemplate": {"metadata": {"annotations": {MACHINE_TYPE_NOT_AVAILABLE_ANNOTATION: "True"}}}
                    }
                },
            },
        }

    mock_api.patch_namespaced_custom_object.side_effect = [None, aiohttp.ClientConnectionError("connection reset")]
    node_group = MachineDeployment(manager, POOL, min_size=1, max_size=5, sleep=mcm_flags_machine_type)

    with pytest.raises(RevertFailedError) as exc_info:
        await node_group.increase_size(1)

    assert isinstance(exc_info.value.__cause__, StoreWriteError)


# --- Ownership ---


async def test_machine_deployment_for_machine(manager):
    owner = await manager.get_machine_deployment_for_machine(MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE))

    assert owner == POOL


async def test_machine_deployment_for_machine_without_owner(manager):
    assert await manager.get_machine_deployment_for_machine(MachineRef(name="orphan", namespace=NAMESPACE)) is None


async def test_machine_deployment_for_missing_machine(manager):
    assert await manager.get_machine_deployment_for_machine(MachineRef(name="gone", namespace=NAMESPACE)) is None


async def test_machine_deployment_for_machine_read_error(manager, mock_api):
    mock_api.get_namespaced_custom_object.side_effect = ApiException(status=500, reason="Internal Server Error")

    with pytest.raises(StoreReadError):
        await manager.get_machine_deployment_for_machine(MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE))


async def test_machine_deployment_nodes(manager):
    nodes = await manager.get_machine_deployment_nodes(POOL)

    assert sorted(nodes) == ["aws:///a/i-1", "aws:///a/i-2"]


# --- Node template ---


async def test_node_template(manager):
    template = await manager.get_machine_deployment_node_template(POOL)

    assert template.instance_type.instance_type == "m5.large"
    assert template.instance_type.vcpu == 2
    assert template.instance_type.memory_mb == 8192
    assert template.instance_type.gpu == 0
    assert template.region == "eu-west-1"
    assert template.zone == "eu-west-1a"
    assert template.labels == {"pool": "worker"}
    assert template.annotations == {"k8s.io/cluster-autoscaler/node-template/label/team": "ml"}
    assert template.taints == {Taint(key="spot", value="true", effect=TaintEffect.NO_SCHEDULE)}


async def test_node_template_missing_class(manager, mock_api):
    machine_deployment = {"metadata": {"name": "bare"}, "spec": {"replicas": 0, "template": {"spec": {}}}}
    mock_api.get_namespaced_custom_object.side_effect = None
    mock_api.get_namespaced_custom_object.return_value = machine_deployment

    with pytest.raises(TemplateUnavailableError):
        await manager.get_machine_deployment_node_template(POOL)


async def test_node_template_class_not_found(manager, mocker):
    mocker.patch.dict(OBJECTS)
    del OBJECTS[("machineclasses", "worker-pool-class")]

    with pytest.raises(TemplateUnavailableError):
        await manager.get_machine_deployment_node_template(POOL)


async def test_node_template_without_instance_type(manager, mocker):
    mocker.patch.dict(OBJECTS, {("machineclasses", "worker-pool-class"): {"metadata": {"name": "worker-pool-class"}}})

    with pytest.raises(TemplateUnavailableError):
        await manager.get_machine_deployment_node_template(POOL)


# --- Deleting machines ---


async def test_delete_machines(manager, mock_api):
    refs = [
        MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE),
        MachineRef(name="worker-pool-abc-2", namespace=NAMESPACE),
    ]

    await manager.delete_machines(refs)

    assert mock_api.patch_namespaced_custom_object.await_args_list == [
        patch_call("machines", "worker-pool-abc-1", priority("1")),
        patch_call("machines", "worker-pool-abc-2", priority("1")),
        patch_call("machinedeployments", "worker-pool", {"spec": {"replicas": 1}}),
    ]


async def test_delete_machines_from_different_deployments(manager, mock_api):
    refs = [
        MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE),
        MachineRef(name="gpu-pool-xyz-1", namespace=NAMESPACE),
    ]

    with pytest.raises(MismatchedPoolError):
        await manager.delete_machines(refs)

    mock_api.patch_namespaced_custom_object.assert_not_awaited()


async def test_delete_machines_restores_priority_when_marking_fails(manager, mock_api):
    async def patch_object(group, version, namespace, plural, name, body, _content_type=None):
        if name == "worker-pool-abc-2":
            raise ApiException(status=409, reason="Conflict")

    mock_api.patch_namespaced_custom_object.side_effect = patch_object
    refs = [
        MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE),
        MachineRef(name="worker-pool-abc-2", namespace=NAMESPACE),
    ]

    with pytest.raises(StoreWriteError):
        await manager.delete_machines(refs)

    assert mock_api.patch_namespaced_custom_object.await_args_list == [
        patch_call("machines", "worker-pool-abc-1", priority("1")),
        patch_call("machines", "worker-pool-abc-2", priority("1")),
        patch_call("machines", "worker-pool-abc-1", priority(None)),
    ]


async def test_delete_machines_restores_previous_priority_when_resize_fails(manager, mock_api, mocker):
    machine = make_machine("worker-pool-abc-1", "worker-pool-abc", "aws:///a/i-1")
    machine["metadata"]["annotations"] = {MACHINE_PRIORITY_ANNOTATION: "3"}
    mocker.patch.dict(OBJECTS, {("machines", "worker-pool-abc-1"): machine})

    async def patch_object(group, version, namespace, plural, name, body, _content_type=None):
        if plural == "machinedeployments":
            raise aiohttp.ClientConnectionError("connection reset")

    mock_api.patch_namespaced_custom_object.side_effect = patch_object

    with pytest.raises(StoreWriteError):
        await manager.delete_machines([MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE)])

    assert mock_api.patch_namespaced_custom_object.await_args_list == [
        patch_call("machines", "worker-pool-abc-1", priority("1")),
        patch_call("machinedeployments", "worker-pool", {"spec": {"replicas": 2}}),
        patch_call("machines", "worker-pool-abc-1", priority("3")),
    ]


async def test_delete_machines_keeps_original_error_when_restore_fails(manager, mock_api):
    mock_api.patch_namespaced_custom_object.side_effect = [
        None,
        ApiException(status=409, reason="Conflict"),
        ApiException(status=500, reason="Internal Server Error"),
    ]
    refs = [
        MachineRef(name="worker-pool-abc-1", namespace=NAMESPACE),
        MachineRef(name="worker-pool-abc-2", namespace=NAMESPACE),
    ]

    with pytest.raises(StoreWriteError) as exc_info:
        await manager.delete_machines(refs)

    assert exc_info.value.__cause__.reason == "Conflict"


async def test_delete_no_machines(manager, mock_api):
    await manager.delete_machines([])

    mock_api.patch_namespaced_custom_object.assert_not_awaited()


async def test_close(manager, mock_api):
    await manager.close()

    mock_api.api_client.close.assert_awaited_once()
