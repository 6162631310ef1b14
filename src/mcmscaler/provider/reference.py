# src/mcmscaler/provider/reference.py

import logging
from typing import Optional

from ..models.pool import MachineRef

logger = logging.getLogger(__name__)


def _last_segment(provider_id: str) -> str:
    return provider_id.rsplit("/", 1)[-1]


async def reference_from_provider_id(manager, provider_id: str) -> Optional[MachineRef]:
    """
    Resolves a node provider ID (e.g. 'aws:///eu-west-1a/i-0abc') to the Machine backing it.

    Provider IDs are compared on their last path segment only, since MCM and
    the kubelet may disagree on the prefix. The first matching machine wins.

    Returns:
        The MachineRef, or None when no machine managed by MCM matches.

    Raises:
        ListFailureError: If machines cannot be listed.
    """
    if not provider_id:
        return None

    node_id = _last_segment(provider_id)
    for machine in await manager.list_machines():
        machine_provider_id = machine.get("spec", {}).get("providerID")
        if not machine_provider_id:
            continue
        if _last_segment(machine_provider_id) == node_id:
            metadata = machine["metadata"]
            return MachineRef(name=metadata["name"], namespace=metadata["namespace"])

    logger.debug("No machine corresponds to provider ID %s", provider_id)
    return None
