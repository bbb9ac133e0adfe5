# ledger.py

"""Capacity accounting for server placements."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .exceptions import (
    CapacityError, LedgerCorruptionError, NodeInUseError,
    UnknownAllocationError, UnknownNodeError
)
from .models import CommittedResources, Node, ServerAllocation

logger = logging.getLogger(__name__)

EMPTY = CommittedResources(memory=0, disk=0, servers=0)


@dataclass
class NodeLedgerState:
    """Declared capacity and active reservations for a single node."""
    node: Node
    lock: threading.Lock = field(default_factory=threading.Lock)
    committed: CommittedResources = EMPTY
    allocations: Dict[str, ServerAllocation] = field(default_factory=dict)
    retired: bool = False

    @property
    def available_memory(self) -> Optional[int]:
        limit = self.node.memory_limit
        return None if limit is None else limit - self.committed.memory

    @property
    def available_disk(self) -> Optional[int]:
        limit = self.node.disk_limit
        return None if limit is None else limit - self.committed.disk


class CapacityLedger:
    """
    Authoritative record of declared capacity and committed reservations.

    Each node owns its own lock, so reservations on different nodes never
    contend. Reads of committed totals take no lock: the totals live in an
    immutable tuple that is swapped whole on every change.
    """

    def __init__(self):
        self._states: Dict[int, NodeLedgerState] = {}
        self._index: Dict[str, int] = {}  # allocation id -> node id
        self._arena_lock = threading.Lock()
        self._index_lock = threading.Lock()

    def register_node(self, node: Node) -> None:
        """Start tracking a node, or refresh its declared capacity."""
        with self._arena_lock:
            state = self._states.get(node.id)
            if state is None:
                self._states[node.id] = NodeLedgerState(node=node)
                logger.debug(f"Ledger tracking node {node.id} ({node.name})")
                return

        with state.lock:
            state.node = node
        logger.debug(f"Ledger updated capacity for node {node.id}")

    def forget_node(self, node_id: int) -> None:
        """Stop tracking a node. Refused while servers are allocated on it."""
        state = self._state(node_id)
        with state.lock:
            if state.allocations:
                raise NodeInUseError(node_id, len(state.allocations))
            state.retired = True
            with self._arena_lock:
                self._states.pop(node_id, None)
        logger.debug(f"Ledger forgot node {node_id}")

    def tracks(self, node_id: int) -> bool:
        return node_id in self._states

    def _state(self, node_id: int) -> NodeLedgerState:
        state = self._states.get(node_id)
        if state is None:
            raise UnknownNodeError(node_id)
        return state

    @staticmethod
    def _check(state: NodeLedgerState, memory: int, disk: int) -> None:
        for resource, available, requested in (
            ("memory", state.available_memory, memory),
            ("disk", state.available_disk, disk),
        ):
            if available is not None and requested > available:
                raise CapacityError(
                    resource, max(available, 0), requested, state.node.id
                )

    def reserve(self, node_id: int, server_id: int, memory: int, disk: int,
                dry_run: bool = False) -> Optional[ServerAllocation]:
        """
        Reserve memory and disk for a server on a node.

        Both resources are checked against declared * (1 + overallocate/100)
        while holding the node's lock, so two concurrent reservations can
        never both pass a check only one of them fits.

        Args:
            node_id: Target node
            server_id: Server being placed
            memory: Requested memory in MiB
            disk: Requested disk in MiB
            dry_run: Check without committing

        Returns:
            The committed allocation, or None for a dry run

        Raises:
            CapacityError: Either resource would exceed its limit
            UnknownNodeError: The node is not tracked
        """
        if memory < 0 or disk < 0:
            raise ValueError("Reservation sizes must be non-negative")

        state = self._state(node_id)
        with state.lock:
            if state.retired:
                raise UnknownNodeError(node_id)

            self._check(state, memory, disk)
            if dry_run:
                return None

            allocation = ServerAllocation(
                id=uuid.uuid4().hex,
                server_id=server_id,
                node_id=node_id,
                memory_reserved=memory,
                disk_reserved=disk,
            )
            state.allocations[allocation.id] = allocation
            committed = state.committed
            state.committed = CommittedResources(
                memory=committed.memory + memory,
                disk=committed.disk + disk,
                servers=committed.servers + 1,
            )
            with self._index_lock:
                self._index[allocation.id] = node_id

        logger.info(
            f"Reserved {memory} MiB memory / {disk} MiB disk for server "
            f"{server_id} on node {node_id}"
        )
        return allocation

    @staticmethod
    def _totals_without(state: NodeLedgerState,
                        allocation: ServerAllocation) -> CommittedResources:
        """Committed totals after dropping an allocation; caller holds the lock."""
        committed = state.committed
        updated = CommittedResources(
            memory=committed.memory - allocation.memory_reserved,
            disk=committed.disk - allocation.disk_reserved,
            servers=committed.servers - 1,
        )
        if updated.memory < 0 or updated.disk < 0 or updated.servers < 0:
            logger.critical(
                f"Ledger corruption on node {state.node.id}: committed totals "
                f"would go negative ({updated}) releasing {allocation.id}"
            )
            raise LedgerCorruptionError(
                f"Negative committed totals on node {state.node.id}: {updated}"
            )
        return updated

    def release(self, allocation_id: str) -> bool:
        """
        Drop a reservation. Releasing an unknown or already released
        allocation is a no-op, as is releasing one that is mid-migration.

        Returns:
            True if a reservation was removed
        """
        with self._index_lock:
            node_id = self._index.get(allocation_id)
        if node_id is None:
            logger.debug(f"Allocation {allocation_id} already released")
            return False

        state = self._state(node_id)
        with state.lock:
            allocation = state.allocations.get(allocation_id)
            if allocation is None:
                return False

            # Check totals before removing anything
            updated = self._totals_without(state, allocation)
            with self._index_lock:
                if self._index.pop(allocation_id, None) is None:
                    return False
            del state.allocations[allocation_id]
            state.committed = updated

        logger.info(
            f"Released allocation {allocation_id} (server "
            f"{allocation.server_id}) on node {node_id}"
        )
        return True

    def migrate(self, allocation_id: str,
                target_node_id: int) -> ServerAllocation:
        """
        Move a server's reservation to another node.

        The source allocation is claimed first, so concurrent migrations or
        releases of the same allocation cannot both act on it. The target is
        then reserved; a CapacityError there puts the claim back and leaves
        the source reservation in place.

        Raises:
            UnknownAllocationError: Not active, or already being moved
            LedgerCorruptionError: Source totals would go negative; nothing
                is moved
        """
        with self._index_lock:
            node_id = self._index.pop(allocation_id, None)
        if node_id is None:
            raise UnknownAllocationError(allocation_id)

        state = self._state(node_id)
        try:
            with state.lock:
                allocation = state.allocations[allocation_id]
                self._totals_without(state, allocation)

            moved = self.reserve(
                target_node_id,
                allocation.server_id,
                allocation.memory_reserved,
                allocation.disk_reserved,
            )
        except Exception:
            with self._index_lock:
                self._index[allocation_id] = node_id
            raise

        with state.lock:
            state.committed = self._totals_without(state, allocation)
            del state.allocations[allocation_id]

        logger.info(
            f"Migrated server {allocation.server_id} from node "
            f"{node_id} to node {target_node_id}"
        )
        return moved

    def allocation(self, allocation_id: str) -> Optional[ServerAllocation]:
        with self._index_lock:
            node_id = self._index.get(allocation_id)
        if node_id is None:
            return None
        state = self._states.get(node_id)
        if state is None:
            return None
        return state.allocations.get(allocation_id)

    def utilization_for(self, node_id: int) -> CommittedResources:
        """Committed memory, disk and server count for a node."""
        return self._state(node_id).committed

    def headroom(self, node_id: int) -> Tuple[Optional[int], Optional[int]]:
        """Remaining allocatable (memory, disk); None means unlimited."""
        state = self._state(node_id)
        return state.available_memory, state.available_disk

    def allocations_for(self, node_id: int) -> List[ServerAllocation]:
        state = self._state(node_id)
        with state.lock:
            return list(state.allocations.values())

    def total_servers(self) -> int:
        return sum(state.committed.servers for state in list(self._states.values()))
