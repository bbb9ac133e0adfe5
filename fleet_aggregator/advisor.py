# advisor.py

"""Node selection and validation for new server placements."""

import logging
from typing import List, Optional, Tuple

from .exceptions import CapacityError, NoPlacementError
from .ledger import CapacityLedger
from .models import Node, ServerAllocation
from .probe import NodeHealthProbe
from .registry import NodeRegistry

logger = logging.getLogger(__name__)


def usage_ratio(used: int, total: Optional[int]) -> float:
    return used / total if total and total > 0 else 1.0


class PlacementAdvisor:
    """
    Picks the node with the most relative headroom for a new server.

    Candidates are scored by their post-placement utilization, the larger
    of the memory and disk ratios, so load spreads across the fleet
    instead of packing the first node that fits.
    """

    def __init__(self, registry: NodeRegistry, ledger: CapacityLedger,
                 probe: NodeHealthProbe):
        self.registry = registry
        self.ledger = ledger
        self.probe = probe

    def eligible(self, node: Node, now: Optional[float] = None) -> bool:
        """A node may receive servers when it is live and not in maintenance."""
        return not node.maintenance_mode and self.probe.is_healthy(node.id, now)

    def post_placement_ratio(self, node: Node, memory: int,
                             disk: int) -> Optional[float]:
        """Utilization after placing the request, or None if it does not fit."""
        committed = self.ledger.utilization_for(node.id)
        available_memory, available_disk = self.ledger.headroom(node.id)
        if available_memory is not None and memory > available_memory:
            return None
        if available_disk is not None and disk > available_disk:
            return None

        memory_total = node.memory_limit if node.memory_limit is not None else node.memory
        disk_total = node.disk_limit if node.disk_limit is not None else node.disk
        return max(
            usage_ratio(committed.memory + memory, memory_total),
            usage_ratio(committed.disk + disk, disk_total),
        )

    def rank(self, memory: int, disk: int = 0,
             location_id: Optional[int] = None) -> List[Tuple[int, float]]:
        """
        Candidate nodes ordered best first.

        Returns:
            List of (node id, post-placement ratio) pairs
        """
        now = self.probe.clock()
        ranked = []
        for node in self.registry.in_location(location_id):
            if not self.eligible(node, now):
                logger.debug(f"Node {node.id} skipped: unhealthy or in maintenance")
                continue

            ratio = self.post_placement_ratio(node, memory, disk)
            if ratio is None:
                logger.debug(f"Node {node.id} skipped: insufficient capacity")
                continue
            ranked.append((node.id, ratio))

        ranked.sort(key=lambda item: (item[1], item[0]))
        return ranked

    def recommend(self, memory: int, disk: int = 0,
                  location_id: Optional[int] = None) -> Optional[int]:
        """Best node id for the request, or None when nothing fits."""
        ranked = self.rank(memory, disk, location_id)
        if not ranked:
            logger.info(
                f"No node can host {memory} MiB memory / {disk} MiB disk"
                + (f" in location {location_id}" if location_id is not None else "")
            )
            return None

        node_id, ratio = ranked[0]
        logger.debug(f"Recommending node {node_id} at {ratio*100:.1f}% after placement")
        return node_id

    def validate(self, node_id: int, memory: int, disk: int) -> None:
        """
        Check an admin-chosen node without committing anything.

        Raises:
            CapacityError: The request does not fit
            UnknownNodeError: The node is not registered
        """
        self.ledger.reserve(node_id, server_id=0, memory=memory, disk=disk,
                            dry_run=True)

    def place(self, server_id: int, memory: int, disk: int,
              location_id: Optional[int] = None,
              node_id: Optional[int] = None) -> ServerAllocation:
        """
        Reserve capacity for a server.

        With node_id the reservation goes to that node or fails. Otherwise
        candidates are tried best first; a candidate that loses its headroom
        to a concurrent reservation is skipped.
        """
        if node_id is not None:
            return self.ledger.reserve(node_id, server_id, memory, disk)

        for candidate, _ in self.rank(memory, disk, location_id):
            try:
                return self.ledger.reserve(candidate, server_id, memory, disk)
            except CapacityError as e:
                logger.info(f"Node {candidate} filled up before placement: {e}")

        raise NoPlacementError(
            f"No node can host server {server_id} "
            f"({memory} MiB memory, {disk} MiB disk)"
        )
