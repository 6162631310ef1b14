# tests/conftest.py

import pytest


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Pytest fixture to mock environment variables for the config module.

    This fixture runs automatically for every test (`autouse=True`). It uses
    monkeypatch to set environment variables, ensuring that the application's
    config is predictable and isolated from the actual environment.
    """
    monkeypatch.setenv("MCM_NAMESPACE", "shoot--dev--test")
    monkeypatch.setenv("MCM_NODE_GROUPS", "1:5:shoot--dev--test.worker-pool,0:3:shoot--dev--test.gpu-pool")
    monkeypatch.setenv("MCM_SCALE_UP_GRACE_PERIOD", "0")
    monkeypatch.delenv("MCM_KUBECONFIG", raising=False)


@pytest.fixture(autouse=True)
def reset_cloud_provider_cache():
    """
    Clears the cached cloud provider so every test builds it from its own environment.
    """
    from mcmscaler.core.factory import get_cloud_provider

    get_cloud_provider.cache_clear()
    yield
    get_cloud_provider.cache_clear()
