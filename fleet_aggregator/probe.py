# probe.py

"""Live health probing of node agents."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, Optional

from .config import (
    CYCLE_BUDGET_FACTOR, FRESHNESS_FACTOR, MAX_PROBE_WORKERS, PROBE_INTERVAL,
    PROBE_TIMEOUT
)
from .exceptions import AgentError
from .models import Node, NodeUtilization
from .transport import AgentTransport, WingsTransport

logger = logging.getLogger(__name__)


class NodeHealthProbe:
    """
    Fetches utilization from every node agent and keeps the latest result
    per node in memory.

    A node is healthy while its latest probe succeeded and is younger than
    the freshness window. Failed probes are not retried within a cycle.
    """

    def __init__(
        self,
        transport: Optional[AgentTransport] = None,
        timeout: float = PROBE_TIMEOUT,
        cycle_budget: float = PROBE_INTERVAL * CYCLE_BUDGET_FACTOR,
        freshness_window: float = PROBE_INTERVAL * FRESHNESS_FACTOR,
        max_workers: int = MAX_PROBE_WORKERS,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport or WingsTransport()
        self.timeout = timeout
        self.cycle_budget = cycle_budget
        self.freshness_window = freshness_window
        self.max_workers = max_workers
        self.clock = clock

        self._cache: Dict[int, NodeUtilization] = {}
        self._failures: Dict[int, int] = {}
        self._lock = threading.Lock()

    def _parse(self, node: Node, data: Dict) -> NodeUtilization:
        return NodeUtilization(
            node_id=node.id,
            cpu_percent=float(data.get("cpu_percent") or 0.0),
            memory_used=int(data.get("memory_used") or 0),
            memory_total=int(data.get("memory_total") or 0),
            disk_used=int(data.get("disk_used") or 0),
            disk_total=int(data.get("disk_total") or 0),
            timestamp=self.clock(),
            reachable=True,
        )

    def _fetch(self, node: Node) -> NodeUtilization:
        """Query one agent. Never raises; failures become unreachable results."""
        try:
            data = self.transport.fetch_utilization(node, self.timeout)
            return self._parse(node, data)
        except AgentError as e:
            logger.warning(f"Probe of node {node.id} ({node.fqdn}) failed: {e}")
            return NodeUtilization.unreachable(node.id, self.clock(), e.reason)
        except (TypeError, ValueError) as e:
            logger.warning(f"Node {node.id} sent malformed utilization: {e}")
            return NodeUtilization.unreachable(
                node.id, self.clock(), "invalid response"
            )
        except Exception as e:
            logger.exception(f"Unexpected error probing node {node.id}: {e}")
            return NodeUtilization.unreachable(node.id, self.clock(), str(e))

    def _record(self, result: NodeUtilization) -> None:
        with self._lock:
            self._cache[result.node_id] = result
            if result.reachable:
                self._failures[result.node_id] = 0
            else:
                self._failures[result.node_id] = (
                    self._failures.get(result.node_id, 0) + 1
                )

    def probe(self, node: Node) -> NodeUtilization:
        """Probe a single node and cache the result."""
        result = self._fetch(node)
        self._record(result)
        return result

    def probe_all(self, nodes: Iterable[Node]) -> Dict[int, NodeUtilization]:
        """
        Run one probe cycle over the given nodes in parallel.

        Each node has its own request timeout. Nodes still outstanding when
        the cycle budget runs out are abandoned and recorded as unreachable;
        their late answers are discarded.

        Returns:
            Dict of node id to the result recorded this cycle
        """
        nodes = list(nodes)
        if not nodes:
            return {}

        started = time.monotonic()
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(nodes)),
            thread_name_prefix="node-probe",
        )
        futures = {executor.submit(self._fetch, node): node for node in nodes}
        done, pending = wait(futures, timeout=self.cycle_budget)
        executor.shutdown(wait=False, cancel_futures=True)

        results: Dict[int, NodeUtilization] = {}
        for future in done:
            result = future.result()
            results[result.node_id] = result
        for future in pending:
            node = futures[future]
            logger.warning(
                f"Abandoning probe of node {node.id} ({node.fqdn}): "
                f"cycle budget of {self.cycle_budget}s exceeded"
            )
            results[node.id] = NodeUtilization.unreachable(
                node.id, self.clock(), "cycle budget exceeded"
            )

        for result in results.values():
            self._record(result)

        reachable = sum(1 for r in results.values() if r.reachable)
        logger.info(
            f"Probe cycle finished: {reachable}/{len(results)} nodes reachable "
            f"in {time.monotonic() - started:.2f}s"
        )
        return results

    def latest(self, node_id: int) -> Optional[NodeUtilization]:
        with self._lock:
            return self._cache.get(node_id)

    def snapshot(self) -> Dict[int, NodeUtilization]:
        with self._lock:
            return dict(self._cache)

    def failure_count(self, node_id: int) -> int:
        """Consecutive failed probes for a node."""
        with self._lock:
            return self._failures.get(node_id, 0)

    def is_healthy(self, node_id: int, now: Optional[float] = None) -> bool:
        result = self.latest(node_id)
        return self.result_is_healthy(result, now)

    def result_is_healthy(self, result: Optional[NodeUtilization],
                          now: Optional[float] = None) -> bool:
        if result is None or not result.reachable:
            return False
        now = self.clock() if now is None else now
        return now - result.timestamp <= self.freshness_window

    def forget(self, node_id: int) -> None:
        with self._lock:
            self._cache.pop(node_id, None)
            self._failures.pop(node_id, None)
