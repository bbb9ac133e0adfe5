# scheduler.py

"""Background probe and aggregation cycles."""

import logging
import threading
import time
from typing import Optional

from .aggregator import FleetAggregator
from .config import PROBE_INTERVAL
from .models import FleetSummary
from .probe import NodeHealthProbe
from .registry import NodeRegistry

logger = logging.getLogger(__name__)


class FleetScheduler:
    """
    Runs probe cycles on a fixed interval in a daemon thread.

    Readers get the summary of the last completed cycle and never wait on
    a live probe. A new cycle starts only after the previous one resolved.
    """

    def __init__(self, registry: NodeRegistry, probe: NodeHealthProbe,
                 aggregator: FleetAggregator, interval: float = PROBE_INTERVAL):
        self.registry = registry
        self.probe = probe
        self.aggregator = aggregator
        self.interval = interval

        self._summary: Optional[FleetSummary] = None
        self._summary_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0

    def run_cycle(self) -> FleetSummary:
        """Probe every eligible node, then publish a fresh summary."""
        with self._cycle_lock:
            self.probe.probe_all(self.registry.probe_targets())
            summary = self.aggregator.summarize()
            with self._summary_lock:
                self._summary = summary
            self.cycles += 1
        return summary

    def latest_summary(self) -> FleetSummary:
        """Last published summary; before the first cycle, built from the cache."""
        with self._summary_lock:
            summary = self._summary
        if summary is None:
            summary = self.aggregator.summarize()
        return summary

    def _loop(self) -> None:
        logger.info(f"Fleet scheduler started (interval {self.interval}s)")
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.run_cycle()
            except Exception as e:
                logger.exception(f"Probe cycle failed: {e}")
            elapsed = time.monotonic() - started
            self._stop.wait(max(0.0, self.interval - elapsed))
        logger.info("Fleet scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="fleet-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
