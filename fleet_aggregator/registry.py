# registry.py

"""In-memory node registry kept in sync with the capacity ledger and probe."""

import logging
import threading
from typing import Dict, List, Optional

from .exceptions import UnknownNodeError
from .ledger import CapacityLedger
from .models import Node
from .probe import NodeHealthProbe

logger = logging.getLogger(__name__)


def same_agent(old: Node, new: Node) -> bool:
    return (old.fqdn, old.scheme, old.daemon_port, old.behind_proxy) == \
        (new.fqdn, new.scheme, new.daemon_port, new.behind_proxy)


class NodeRegistry:
    """
    Registered nodes, keyed by id.

    Probe results belong to a host, not an id: removing a node, reusing its
    id, or pointing it at another agent drops whatever the probe cached.
    """

    def __init__(self, ledger: CapacityLedger,
                 probe: Optional[NodeHealthProbe] = None):
        self.ledger = ledger
        self.probe = probe
        self._nodes: Dict[int, Node] = {}
        self._lock = threading.Lock()

    def _forget_health(self, node_id: int) -> None:
        if self.probe is not None:
            self.probe.forget(node_id)

    def add(self, node: Node) -> None:
        with self._lock:
            if node.id in self._nodes:
                raise ValueError(f"Node {node.id} is already registered")
            self._nodes[node.id] = node
            self._forget_health(node.id)
        self.ledger.register_node(node)
        logger.info(f"Registered node {node.id} ({node.name}, {node.fqdn})")

    def update(self, node: Node) -> None:
        """Replace a node's record; declared capacity changes reach the ledger."""
        with self._lock:
            old = self._nodes.get(node.id)
            if old is None:
                raise UnknownNodeError(node.id)
            self._nodes[node.id] = node
            if not same_agent(old, node):
                self._forget_health(node.id)
        self.ledger.register_node(node)
        logger.info(f"Updated node {node.id} ({node.name})")

    def remove(self, node_id: int) -> None:
        """Unregister a node. Raises NodeInUseError while servers use it."""
        with self._lock:
            if node_id not in self._nodes:
                raise UnknownNodeError(node_id)
            self.ledger.forget_node(node_id)
            del self._nodes[node_id]
            self._forget_health(node_id)
        logger.info(f"Removed node {node_id}")

    def get(self, node_id: int) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node

    def all(self) -> List[Node]:
        with self._lock:
            return sorted(self._nodes.values(), key=lambda n: n.id)

    def probe_targets(self) -> List[Node]:
        """Nodes that should be probed: everything not in maintenance."""
        return [node for node in self.all() if not node.maintenance_mode]

    def in_location(self, location_id: Optional[int]) -> List[Node]:
        if location_id is None:
            return self.all()
        return [node for node in self.all() if node.location_id == location_id]
