"""
Shared pytest fixtures.

Node agents are replaced by FakeTransport; time is driven by FakeClock.
"""

import sys
from pathlib import Path

# Add project root to sys.path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import threading
from typing import Any, Dict, Optional

import pytest

from fleet_aggregator.exceptions import AgentError
from fleet_aggregator.ledger import CapacityLedger
from fleet_aggregator.manager import FleetManager
from fleet_aggregator.models import Node, NodeFlags, ProbeSettings
from fleet_aggregator.transport import AgentTransport


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(AgentTransport):
    """Serves canned payloads per node id; anything else is an error."""

    def __init__(self):
        self.payloads: Dict[int, Any] = {}
        self.calls = []
        self.lock = threading.Lock()

    def set_utilization(self, node_id: int, cpu: float = 10.0,
                        memory_used: int = 1024, memory_total: int = 8192,
                        disk_used: int = 10240, disk_total: int = 102400):
        self.payloads[node_id] = {
            "cpu_percent": cpu,
            "memory_used": memory_used,
            "memory_total": memory_total,
            "disk_used": disk_used,
            "disk_total": disk_total,
        }

    def fail(self, node_id: int, reason: str = "timeout"):
        self.payloads[node_id] = AgentError(f"node {node_id} down", reason)

    def fetch_utilization(self, node: Node, timeout: float) -> Dict[str, Any]:
        with self.lock:
            self.calls.append(node.id)
        payload = self.payloads.get(node.id)
        if callable(payload):
            return payload(node)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            raise AgentError(f"no agent on node {node.id}", "connection error")
        return payload


def make_node(node_id: int, memory: int = 8192, disk: int = 102400,
              memory_overallocate: int = 0, disk_overallocate: int = 0,
              location_id: Optional[int] = 1, maintenance: bool = False,
              behind_proxy: bool = False, public: bool = True) -> Node:
    flags = NodeFlags.NONE
    if public:
        flags |= NodeFlags.PUBLIC
    if maintenance:
        flags |= NodeFlags.MAINTENANCE
    if behind_proxy:
        flags |= NodeFlags.BEHIND_PROXY
    return Node(
        id=node_id,
        name=f"node-{node_id}",
        fqdn=f"node{node_id}.example.com",
        memory=memory,
        disk=disk,
        memory_overallocate=memory_overallocate,
        disk_overallocate=disk_overallocate,
        location_id=location_id,
        flags=flags,
        daemon_token=f"token-{node_id}",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> ProbeSettings:
    return ProbeSettings(
        timeout=1.0,
        interval=30.0,
        freshness_window=60.0,
        cycle_budget=5.0,
        max_workers=8,
    )


@pytest.fixture
def ledger() -> CapacityLedger:
    return CapacityLedger()


@pytest.fixture
def manager(settings, transport, clock) -> FleetManager:
    return FleetManager(settings=settings, transport=transport, clock=clock)
