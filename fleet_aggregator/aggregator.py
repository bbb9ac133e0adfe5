# aggregator.py

"""Fleet-wide statistics for dashboards and the public status page."""

import logging
from typing import Any, Dict, List, Optional

from .exceptions import StatusPageDisabledError
from .ledger import CapacityLedger
from .models import (
    FleetSummary, Node, NodeResources, NodeUtilization, StatusPageSettings
)
from .probe import NodeHealthProbe
from .registry import NodeRegistry
from .utils import percent

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class FleetAggregator:
    """
    Joins the probe cache with ledger totals.

    Every method here is read-only with respect to probe and ledger state.
    """

    def __init__(self, registry: NodeRegistry, probe: NodeHealthProbe,
                 ledger: CapacityLedger):
        self.registry = registry
        self.probe = probe
        self.ledger = ledger

    def _node_record(self, node: Node, result: Optional[NodeUtilization],
                     healthy: bool) -> Dict[str, Any]:
        committed = self.ledger.utilization_for(node.id)

        utilization = None
        if healthy:
            utilization = result.to_dict()
            utilization["memory_percent"] = percent(
                result.memory_used, result.memory_total
            )
            utilization["disk_percent"] = percent(
                result.disk_used, result.disk_total
            )

        return {
            "id": node.id,
            "name": node.name,
            "fqdn": node.fqdn,
            "location_id": node.location_id,
            "status": HEALTHY if healthy else UNHEALTHY,
            "maintenance_mode": node.maintenance_mode,
            "server_count": committed.servers,
            "failed_probes": self.probe.failure_count(node.id),
            "utilization": utilization,
            "committed": {
                "memory": committed.memory,
                "disk": committed.disk,
                "memory_percent": percent(committed.memory, node.memory),
                "disk_percent": percent(committed.disk, node.disk),
            },
        }

    def summarize(self) -> FleetSummary:
        """
        Build the fleet summary from the latest probe results.

        Live totals only include healthy nodes. A node in maintenance mode
        is not probed and counts as unhealthy.
        """
        now = self.probe.clock()
        snapshot = self.probe.snapshot()

        healthy_count = 0
        total_memory = used_memory = 0
        total_disk = used_disk = 0
        total_cpu = 0.0
        records: List[Dict[str, Any]] = []

        nodes = self.registry.all()
        for node in nodes:
            result = snapshot.get(node.id)
            healthy = (not node.maintenance_mode
                       and self.probe.result_is_healthy(result, now))

            if healthy:
                healthy_count += 1
                total_memory += result.memory_total
                used_memory += result.memory_used
                total_disk += result.disk_total
                used_disk += result.disk_used
                total_cpu += result.cpu_percent

            records.append(self._node_record(node, result, healthy))

        avg_cpu = round(total_cpu / healthy_count, 2) if healthy_count else 0.0

        summary = FleetSummary(
            total_nodes=len(nodes),
            healthy_nodes=healthy_count,
            unhealthy_nodes=len(nodes) - healthy_count,
            total_memory=total_memory,
            used_memory=used_memory,
            total_disk=total_disk,
            used_disk=used_disk,
            avg_cpu_percent=avg_cpu,
            total_servers=self.ledger.total_servers(),
            nodes=records,
            generated_at=now,
        )
        logger.debug(
            f"Fleet summary: {summary.healthy_nodes}/{summary.total_nodes} "
            f"healthy, avg CPU {summary.avg_cpu_percent}%"
        )
        return summary

    def node_resources(self) -> List[NodeResources]:
        """Declared versus committed capacity for every node, by name."""
        resources = []
        for node in self.registry.all():
            committed = self.ledger.utilization_for(node.id)
            resources.append(NodeResources(
                id=node.id,
                name=node.name,
                memory=node.memory,
                disk=node.disk,
                allocated_memory=committed.memory,
                allocated_disk=committed.disk,
                server_count=committed.servers,
                memory_usage_percentage=percent(committed.memory, node.memory),
                disk_usage_percentage=percent(committed.disk, node.disk),
            ))
        return sorted(resources, key=lambda r: r.name)

    def nodes_overview(self) -> Dict[str, Any]:
        nodes = self.registry.all()
        total = len(nodes)
        public = sum(1 for n in nodes if n.public)
        return {
            "total_nodes": total,
            "public_nodes": public,
            "private_nodes": total - public,
            "maintenance_nodes": sum(1 for n in nodes if n.maintenance_mode),
            "proxy_nodes": sum(1 for n in nodes if n.behind_proxy),
            "percentage_public": percent(public, total),
        }

    def nodes_by_location(self) -> Dict[str, Any]:
        """
        Node and server distribution per location, busiest first.

        Nodes without a location are grouped under a None location_id.
        """
        locations: Dict[Optional[int], Dict[str, Any]] = {}
        for node in self.registry.all():
            committed = self.ledger.utilization_for(node.id)
            entry = locations.setdefault(node.location_id, {
                "location_id": node.location_id,
                "node_count": 0,
                "server_count": 0,
                "memory": 0,
                "allocated_memory": 0,
                "disk": 0,
                "allocated_disk": 0,
            })
            entry["node_count"] += 1
            entry["server_count"] += committed.servers
            entry["memory"] += node.memory
            entry["allocated_memory"] += committed.memory
            entry["disk"] += node.disk
            entry["allocated_disk"] += committed.disk

        distribution = sorted(
            locations.values(),
            key=lambda e: (-e["node_count"], e["location_id"] is None,
                           e["location_id"] or 0),
        )
        return {"locations": distribution}

    def servers_by_node(self) -> Dict[str, Any]:
        """Server count per node, most loaded first."""
        distribution = []
        for node in self.registry.all():
            distribution.append({
                "node_id": node.id,
                "node_name": node.name,
                "fqdn": node.fqdn,
                "location_id": node.location_id,
                "server_count": self.ledger.utilization_for(node.id).servers,
            })
        distribution.sort(key=lambda e: (-e["server_count"], e["node_id"]))
        return {"nodes": distribution}

    def status_page(self, settings: StatusPageSettings,
                    summary: Optional[FleetSummary] = None) -> Dict[str, Any]:
        """
        Public status page payload, trimmed to the enabled sections.

        Raises:
            StatusPageDisabledError: The page is switched off
        """
        if not settings.enabled:
            raise StatusPageDisabledError("Status page is disabled")

        summary = summary or self.summarize()
        data: Dict[str, Any] = {}

        if settings.show_node_status or settings.show_load_usage:
            stats = {
                "total_nodes": summary.total_nodes,
                "healthy_nodes": summary.healthy_nodes,
                "unhealthy_nodes": summary.unhealthy_nodes,
            }
            if settings.show_load_usage:
                full = summary.global_stats()
                for key in ("total_memory", "used_memory", "total_disk",
                            "used_disk", "avg_cpu_percent"):
                    stats[key] = full[key]
            data["global"] = stats

        if settings.show_individual_nodes:
            data["nodes"] = [
                {
                    "id": node["id"],
                    "name": node["name"],
                    "fqdn": node["fqdn"],
                    "status": node["status"],
                    "server_count": node["server_count"],
                    "utilization": node["utilization"],
                }
                for node in summary.nodes
            ]

        if settings.show_total_servers:
            data["total_servers"] = summary.total_servers

        return {"enabled": True, "data": data}
