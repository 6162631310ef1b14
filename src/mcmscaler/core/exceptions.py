# src/mcmscaler/core/exceptions.py


class McmScalerError(Exception):
    """Base exception for mcm-scaler."""

    pass


class InvalidArgumentError(McmScalerError):
    """Raised when a resize delta has the wrong sign."""

    pass


class BoundsExceededError(McmScalerError):
    """Raised when a resize would leave the node group outside min/max."""

    pass


class CapacityUnavailableError(McmScalerError):
    """Raised when MCM reports the machine type of a node group cannot be provisioned."""

    pass


class WouldDeleteRunningNodesError(McmScalerError):
    """Raised when a target size decrease would drop below the registered node count."""

    pass


class FloorReachedError(McmScalerError):
    """Raised when nodes are deleted from a node group already at its minimum size."""

    pass


class MismatchedPoolError(McmScalerError):
    """Raised when a node does not belong to the node group it is deleted from."""

    pass


class StoreError(McmScalerError):
    """Base exception for failures talking to the machine-controller-manager resources."""

    pass


class StoreReadError(StoreError):
    """Raised when a MachineDeployment or MachineClass cannot be read."""

    pass


class StoreWriteError(StoreError):
    """Raised when a MachineDeployment or Machine cannot be updated."""

    pass


class RevertFailedError(StoreWriteError):
    """
    Raised when a failed scale-up could not be rolled back.

    The node group's desired size is left at the increased value and must be
    treated as suspect until the next reconciliation.
    """

    pass


class ListFailureError(StoreError):
    """Raised when Machine objects cannot be listed."""

    pass


class TemplateUnavailableError(McmScalerError):
    """Raised when no node template can be derived for a node group."""

    pass


class ConfigParseError(McmScalerError):
    """Raised when a node group spec or configuration value is malformed."""

    pass


class NotImplementedByProviderError(McmScalerError):
    """Raised by cloud provider operations MCM does not support."""

    pass


class AlreadyExistsError(McmScalerError):
    """Raised when creating a node group that already exists."""

    pass
