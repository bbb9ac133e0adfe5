# exceptions.py

"""Custom exceptions for the Fleet Resource Aggregator."""

from typing import Optional


class FleetError(Exception):
    """Base exception for fleet-related errors."""
    pass


class ConfigurationError(FleetError):
    """Exception for configuration-related errors."""
    pass


class UnknownNodeError(FleetError):
    """Raised when a node id is not registered."""

    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"Unknown node: {node_id}")


class NodeInUseError(FleetError):
    """Raised when removing a node that still has servers placed on it."""

    def __init__(self, node_id: int, servers: int):
        self.node_id = node_id
        self.servers = servers
        super().__init__(
            f"Node {node_id} still has {servers} server(s) allocated"
        )


class CapacityError(FleetError):
    """A reservation would exceed a node's allocatable capacity.

    Carries the exhausted resource and the numbers involved so the caller
    can show an actionable rejection.
    """

    def __init__(self, resource: str, available: int, requested: int,
                 node_id: Optional[int] = None):
        self.resource = resource
        self.available = available
        self.requested = requested
        self.node_id = node_id
        where = f" on node {node_id}" if node_id is not None else ""
        super().__init__(
            f"Not enough {resource}{where}: "
            f"{available} MiB available, {requested} MiB requested"
        )


class NoPlacementError(FleetError):
    """No node satisfies the placement constraints."""
    pass


class LedgerCorruptionError(FleetError):
    """Committed totals went negative; indicates a bookkeeping bug."""
    pass


class AgentError(FleetError):
    """Exception for node agent transport failures."""

    def __init__(self, message: str, reason: str = "transport error"):
        self.reason = reason
        super().__init__(message)


class StatusPageDisabledError(FleetError):
    """The public status page is switched off."""
    pass


class UnknownAllocationError(FleetError):
    """Raised when an allocation id is not active in the ledger."""

    def __init__(self, allocation_id: str):
        self.allocation_id = allocation_id
        super().__init__(f"Unknown allocation: {allocation_id}")
