# src/mcmscaler/core/config.py

import logging
import os
import re
from typing import List, Tuple

from dotenv import load_dotenv

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

_LIMIT_PATTERN = re.compile(r"^(\d+):(\d+)$")


class Config:
    """
    Handles the application's configuration by loading values from environment variables.
    """

    def __init__(self):
        # --- Target cluster credentials ---
        self.MCM_KUBECONFIG = self._get_secret("MCM_KUBECONFIG")

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (mounted volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"/etc/mcmscaler/secrets/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logging.getLogger(__name__).debug(f"Loaded secret '{key}' from {secret_file}")
                    return value
            except PermissionError as e:
                raise PermissionError(
                    f"Secret file '{secret_file}' exists but cannot be read due to permission denied. "
                    f"Please check file permissions or run with appropriate privileges."
                ) from e
            except (IOError, OSError) as e:
                raise IOError(
                    f"Secret file '{secret_file}' exists but cannot be read: {e}. "
                    f"Please check the file integrity and system resources."
                ) from e
        return os.getenv(key, default)

    # --- Logging variables ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- machine-controller-manager API ---
    MCM_API_GROUP = os.getenv("MCM_API_GROUP", "machine.sapcloud.io")
    MCM_API_VERSION = os.getenv("MCM_API_VERSION", "v1alpha1")

    # Node groups, namespace and grace period are read at access time so tests
    # and the CLI can change them through the environment.
    @property
    def MCM_NAMESPACE(self) -> str:
        return os.getenv("MCM_NAMESPACE", "default")

    @property
    def MCM_NODE_GROUPS(self) -> List[str]:
        raw = os.getenv("MCM_NODE_GROUPS", "")
        return [spec.strip() for spec in raw.split(",") if spec.strip()]

    @property
    def MCM_SCALE_UP_GRACE_PERIOD(self) -> float:
        return float(os.getenv("MCM_SCALE_UP_GRACE_PERIOD", "5"))

    # --- Cluster-wide resource limits ---
    CORES_TOTAL = os.getenv("CORES_TOTAL", "0:320000")
    MEMORY_TOTAL = os.getenv("MEMORY_TOTAL", "0:6400000")

    @staticmethod
    def parse_limits(value: str) -> Tuple[int, int]:
        """Parses a 'min:max' limit pair."""
        match = _LIMIT_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"Limit '{value}' must have the form 'min:max'.")
        low, high = int(match.group(1)), int(match.group(2))
        if low > high:
            raise ValueError(f"Limit '{value}' has min greater than max.")
        return low, high

    def validate_instance(self):
        if self.MCM_SCALE_UP_GRACE_PERIOD < 0:
            raise ValueError("MCM_SCALE_UP_GRACE_PERIOD must not be negative.")
        self.parse_limits(self.CORES_TOTAL)
        self.parse_limits(self.MEMORY_TOTAL)
        if not self.MCM_NODE_GROUPS:
            logging.warning("MCM_NODE_GROUPS is not set; no node groups will be managed.")


# Instantiate the config to be imported by other modules
config = Config()
