# manager.py

"""Wiring of registry, ledger, probe, aggregator and advisor."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .advisor import PlacementAdvisor
from .aggregator import FleetAggregator
from .exceptions import ConfigurationError, FleetError
from .ledger import CapacityLedger
from .models import Node, ProbeSettings, ServerAllocation
from .probe import NodeHealthProbe
from .registry import NodeRegistry
from .scheduler import FleetScheduler
from .transport import AgentTransport
from .utils import load_inventory, load_settings

logger = logging.getLogger(__name__)


class FleetManager:
    """Owns one instance of each fleet component."""

    def __init__(self, settings: Optional[ProbeSettings] = None,
                 transport: Optional[AgentTransport] = None,
                 clock=None):
        self.settings = settings or load_settings()

        probe_kwargs = {}
        if clock is not None:
            probe_kwargs["clock"] = clock

        self.ledger = CapacityLedger()
        self.probe = NodeHealthProbe(
            transport=transport,
            timeout=self.settings.timeout,
            cycle_budget=self.settings.cycle_budget,
            freshness_window=self.settings.freshness_window,
            max_workers=self.settings.max_workers,
            **probe_kwargs
        )
        self.registry = NodeRegistry(self.ledger, self.probe)
        self.aggregator = FleetAggregator(self.registry, self.probe, self.ledger)
        self.advisor = PlacementAdvisor(self.registry, self.ledger, self.probe)
        self.scheduler = FleetScheduler(
            self.registry, self.probe, self.aggregator,
            interval=self.settings.interval,
        )

    @classmethod
    def from_inventory(cls, path: Path, **kwargs) -> "FleetManager":
        """Build a manager from a JSON inventory of nodes and allocations."""
        nodes, allocations = load_inventory(path)
        manager = cls(**kwargs)
        manager.add_nodes(nodes)
        manager.load_allocations(allocations)
        logger.info(
            f"Loaded {len(nodes)} nodes and {len(allocations)} allocations "
            f"from {path}"
        )
        return manager

    def add_nodes(self, nodes: Iterable[Node]) -> None:
        for node in nodes:
            self.registry.add(node)

    def load_allocations(
            self, records: List[Dict[str, Any]]) -> List[ServerAllocation]:
        """
        Replay existing placements through the ledger.

        An inventory that already violates a node's capacity is rejected.
        """
        loaded = []
        for record in records:
            try:
                allocation = self.ledger.reserve(
                    int(record["node_id"]),
                    int(record["server_id"]),
                    int(record.get("memory", 0)),
                    int(record.get("disk", 0)),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid allocation record {record}: {e}")
            except FleetError as e:
                raise ConfigurationError(
                    f"Allocation for server {record.get('server_id')} "
                    f"cannot be loaded: {e}"
                )
            loaded.append(allocation)
        return loaded
