# models.py

"""Data models for the Fleet Resource Aggregator."""

from dataclasses import dataclass, field, replace
from enum import Flag, auto
from typing import Any, Dict, List, NamedTuple, Optional

from .config import DEFAULT_DAEMON_PORT


class NodeFlags(Flag):
    """Independent administrative flags on a node."""
    NONE = 0
    PUBLIC = auto()
    MAINTENANCE = auto()
    BEHIND_PROXY = auto()


def allocatable(declared: int, overallocate: int) -> Optional[int]:
    """Allocatable MiB for a declared amount, or None when unlimited."""
    if overallocate < 0:
        return None
    return declared * (100 + overallocate) // 100


@dataclass(frozen=True)
class Node:
    """A host that runs game server instances."""
    id: int
    name: str
    fqdn: str
    memory: int  # MiB
    disk: int  # MiB
    scheme: str = "https"
    memory_overallocate: int = 0
    disk_overallocate: int = 0
    location_id: Optional[int] = None
    flags: NodeFlags = NodeFlags.PUBLIC
    daemon_port: int = DEFAULT_DAEMON_PORT
    daemon_token: str = field(default="", repr=False)

    @property
    def maintenance_mode(self) -> bool:
        return bool(self.flags & NodeFlags.MAINTENANCE)

    @property
    def behind_proxy(self) -> bool:
        return bool(self.flags & NodeFlags.BEHIND_PROXY)

    @property
    def public(self) -> bool:
        return bool(self.flags & NodeFlags.PUBLIC)

    @property
    def memory_limit(self) -> Optional[int]:
        return allocatable(self.memory, self.memory_overallocate)

    @property
    def disk_limit(self) -> Optional[int]:
        return allocatable(self.disk, self.disk_overallocate)

    def with_flags(self, flags: NodeFlags) -> "Node":
        return replace(self, flags=flags)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Build a node from an inventory record."""
        flags = NodeFlags.NONE
        if data.get("public", True):
            flags |= NodeFlags.PUBLIC
        if data.get("maintenance_mode", False):
            flags |= NodeFlags.MAINTENANCE
        if data.get("behind_proxy", False):
            flags |= NodeFlags.BEHIND_PROXY

        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            fqdn=str(data["fqdn"]),
            memory=int(data.get("memory", 0)),
            disk=int(data.get("disk", 0)),
            scheme=data.get("scheme", "https"),
            memory_overallocate=int(data.get("memory_overallocate", 0)),
            disk_overallocate=int(data.get("disk_overallocate", 0)),
            location_id=data.get("location_id"),
            flags=flags,
            daemon_port=int(data.get("daemon_port", DEFAULT_DAEMON_PORT)),
            daemon_token=data.get("daemon_token", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        # daemon_token is never serialized
        return {
            "id": self.id,
            "name": self.name,
            "fqdn": self.fqdn,
            "scheme": self.scheme,
            "memory": self.memory,
            "memory_overallocate": self.memory_overallocate,
            "disk": self.disk,
            "disk_overallocate": self.disk_overallocate,
            "location_id": self.location_id,
            "public": self.public,
            "maintenance_mode": self.maintenance_mode,
            "behind_proxy": self.behind_proxy,
            "daemon_port": self.daemon_port,
        }


class NodeUtilization(NamedTuple):
    """Live utilization reported by a node agent for one probe."""
    node_id: int
    cpu_percent: float
    memory_used: int
    memory_total: int
    disk_used: int
    disk_total: int
    timestamp: float
    reachable: bool
    failure_reason: Optional[str] = None

    @classmethod
    def unreachable(cls, node_id: int, timestamp: float,
                    reason: str) -> "NodeUtilization":
        return cls(node_id, 0.0, 0, 0, 0, 0, timestamp, False, reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu_percent": round(self.cpu_percent, 2),
            "memory_used": self.memory_used,
            "memory_total": self.memory_total,
            "disk_used": self.disk_used,
            "disk_total": self.disk_total,
            "timestamp": self.timestamp,
        }


class ServerAllocation(NamedTuple):
    """Memory and disk reserved for one server on one node."""
    id: str
    server_id: int
    node_id: int
    memory_reserved: int
    disk_reserved: int


class CommittedResources(NamedTuple):
    """Sum of active allocations on a node."""
    memory: int
    disk: int
    servers: int


class NodeResources(NamedTuple):
    """Declared versus committed capacity for a node."""
    id: int
    name: str
    memory: int
    disk: int
    allocated_memory: int
    allocated_disk: int
    server_count: int
    memory_usage_percentage: float
    disk_usage_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()


class FleetSummary(NamedTuple):
    """Fleet-wide statistics plus the per-node display records."""
    total_nodes: int
    healthy_nodes: int
    unhealthy_nodes: int
    total_memory: int
    used_memory: int
    total_disk: int
    used_disk: int
    avg_cpu_percent: float
    total_servers: int
    nodes: List[Dict[str, Any]]
    generated_at: float

    def global_stats(self) -> Dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "healthy_nodes": self.healthy_nodes,
            "unhealthy_nodes": self.unhealthy_nodes,
            "total_memory": self.total_memory,
            "used_memory": self.used_memory,
            "total_disk": self.total_disk,
            "used_disk": self.used_disk,
            "avg_cpu_percent": self.avg_cpu_percent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global": self.global_stats(),
            "nodes": [dict(node) for node in self.nodes],
            "total_servers": self.total_servers,
            "generated_at": self.generated_at,
        }


class StatusPageSettings(NamedTuple):
    """Visibility toggles for the public status page."""
    enabled: bool = False
    show_node_status: bool = True
    show_load_usage: bool = True
    show_total_servers: bool = True
    show_individual_nodes: bool = False


class ProbeSettings(NamedTuple):
    """Timing knobs for the probe cycle."""
    timeout: float
    interval: float
    freshness_window: float
    cycle_budget: float
    max_workers: int
