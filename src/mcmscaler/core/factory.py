# src/mcmscaler/core/factory.py
"""
Factory functions to instantiate the cloud provider and its collaborators
from the application configuration.
"""

import logging
from functools import lru_cache

from ..models.pool import ResourceLimiter
from ..provider.cloud_provider import McmCloudProvider, build_mcm_cloud_provider
from ..provider.mcm_manager import McmManager
from .config import config
from .exceptions import ConfigParseError

logger = logging.getLogger(__name__)


def build_resource_limiter() -> ResourceLimiter:
    """
    Builds the cluster-wide limits from CORES_TOTAL and MEMORY_TOTAL.
    """
    try:
        min_cores, max_cores = config.parse_limits(config.CORES_TOTAL)
        min_memory, max_memory = config.parse_limits(config.MEMORY_TOTAL)
    except ValueError as e:
        raise ConfigParseError(str(e)) from e
    return ResourceLimiter(
        min_limits={"cpu": min_cores, "memory": min_memory},
        max_limits={"cpu": max_cores, "memory": max_memory},
    )


@lru_cache(maxsize=1)
def get_cloud_provider() -> McmCloudProvider:
    """
    Factory function to get the cloud provider configured from the environment.
    Uses lru_cache to act as a singleton.

    Raises:
        ConfigParseError: If the node group specs or limits are invalid.
    """
    logger.info("Initializing machine-controller-manager cloud provider...")
    manager = McmManager(namespace=config.MCM_NAMESPACE)
    provider = build_mcm_cloud_provider(
        manager,
        config.MCM_NODE_GROUPS,
        resource_limiter=build_resource_limiter(),
        grace_period=config.MCM_SCALE_UP_GRACE_PERIOD,
    )
    logger.info("Managing %d node group(s) in namespace %s", len(provider.node_groups()), manager.namespace)
    return provider
