# src/mcmscaler/core/k8s_client.py

import asyncio
import logging
import typing

from kubernetes_asyncio import client, config

from .config import config as global_config

logger = logging.getLogger(__name__)

# Global lock to prevent race conditions during config loading
_CONFIG_LOCK = asyncio.Lock()
_CONFIG_LOADED = False


async def ensure_k8s_config() -> bool:
    """
    Ensures that the Kubernetes configuration is loaded exactly once.

    The kubeconfig of the cluster running machine-controller-manager wins when
    MCM_KUBECONFIG is set, then the in-cluster config, then the default kubeconfig.

    Returns:
        bool: True if config was loaded successfully (or was already loaded), False otherwise.
    """
    global _CONFIG_LOADED

    if _CONFIG_LOADED:
        return True

    async with _CONFIG_LOCK:
        # Double-check locking pattern
        if _CONFIG_LOADED:
            return True

        if global_config.MCM_KUBECONFIG:
            try:
                await config.load_kube_config(config_file=global_config.MCM_KUBECONFIG)
                logger.info("Loaded MCM kubeconfig from %s.", global_config.MCM_KUBECONFIG)
                _CONFIG_LOADED = True
                return True
            except config.ConfigException as e:
                logger.error("Could not load MCM kubeconfig %s: %s", global_config.MCM_KUBECONFIG, e)
                return False

        try:
            logger.debug("Attempting to load in-cluster Kubernetes config...")
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration.")
            _CONFIG_LOADED = True
            return True
        except config.ConfigException:
            logger.debug("In-cluster config not found.")

        try:
            logger.debug("Attempting to load local kubeconfig...")
            await config.load_kube_config()
            logger.info("Loaded Kubernetes configuration from kubeconfig file.")
            _CONFIG_LOADED = True
            return True
        except config.ConfigException:
            logger.warning("Could not find kubeconfig file.")

    logger.warning("Failed to load any Kubernetes configuration.")
    return False


async def get_custom_objects_api() -> typing.Optional[client.CustomObjectsApi]:
    """
    Returns a configured CustomObjectsApi instance for the MCM resources.
    Safe to call concurrently.
    """
    if await ensure_k8s_config():
        return client.CustomObjectsApi()
    return None
