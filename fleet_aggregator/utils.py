# utils.py

"""Utility functions for the Fleet Resource Aggregator."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import (
    CYCLE_BUDGET_FACTOR, ENV_CYCLE_BUDGET, ENV_FRESHNESS_WINDOW,
    ENV_MAX_WORKERS, ENV_NODES_FILE, ENV_PROBE_INTERVAL, ENV_PROBE_TIMEOUT,
    FRESHNESS_FACTOR, LOG_DATE_FORMAT, LOG_FORMAT, MAX_PROBE_WORKERS,
    PROBE_INTERVAL, PROBE_TIMEOUT, STATUS_PAGE_DEFAULTS
)
from .exceptions import ConfigurationError
from .models import Node, ProbeSettings, StatusPageSettings

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with appropriate level and format."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )


def percent(used: float, total: float) -> float:
    """used/total as a percentage, 0.0 when total is not positive."""
    if total <= 0:
        return 0.0
    return round(used / total * 100, 2)


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a whole number, got {raw!r}")
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {raw!r}")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be true or false, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> ProbeSettings:
    """
    Read probe timing from the environment.

    Freshness window and cycle budget default to multiples of the interval.
    Raises ConfigurationError for malformed values.
    """
    env = os.environ if env is None else env

    timeout = _positive_float(env, ENV_PROBE_TIMEOUT, PROBE_TIMEOUT)
    interval = _positive_float(env, ENV_PROBE_INTERVAL, PROBE_INTERVAL)
    freshness = _positive_float(
        env, ENV_FRESHNESS_WINDOW, interval * FRESHNESS_FACTOR
    )
    budget = _positive_float(
        env, ENV_CYCLE_BUDGET, interval * CYCLE_BUDGET_FACTOR
    )
    workers = _positive_int(env, ENV_MAX_WORKERS, MAX_PROBE_WORKERS)

    if timeout > budget:
        raise ConfigurationError(
            f"Probe timeout ({timeout}s) exceeds the cycle budget ({budget}s)"
        )

    return ProbeSettings(
        timeout=timeout,
        interval=interval,
        freshness_window=freshness,
        cycle_budget=budget,
        max_workers=workers,
    )


def load_status_page_settings(
        env: Optional[Mapping[str, str]] = None) -> StatusPageSettings:
    """Read the status page visibility toggles from the environment."""
    env = os.environ if env is None else env
    values = {
        name: _flag(env, name, default)
        for name, default in STATUS_PAGE_DEFAULTS.items()
    }
    return StatusPageSettings(
        enabled=values["STATUS_PAGE_ENABLED"],
        show_node_status=values["STATUS_PAGE_SHOW_NODE_STATUS"],
        show_load_usage=values["STATUS_PAGE_SHOW_LOAD_USAGE"],
        show_total_servers=values["STATUS_PAGE_SHOW_TOTAL_SERVERS"],
        show_individual_nodes=values["STATUS_PAGE_SHOW_INDIVIDUAL_NODES"],
    )


def resolve_nodes_file(path: Optional[str] = None) -> Path:
    """Pick the inventory file from the argument or FLEET_NODES_FILE."""
    path = path or os.environ.get(ENV_NODES_FILE)
    if not path:
        raise ConfigurationError(
            f"No inventory given: pass --nodes-file or set {ENV_NODES_FILE}"
        )
    return Path(path)


def load_inventory(path: Path) -> Tuple[List[Node], List[Dict[str, Any]]]:
    """
    Load nodes and existing allocations from a JSON inventory.

    Args:
        path: File with "nodes" and optional "allocations" arrays

    Returns:
        Tuple of parsed nodes and raw allocation records
    """
    if not path.exists():
        raise ConfigurationError(f"Inventory not found: {path}")

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}")

    try:
        nodes = [Node.from_dict(record) for record in data.get("nodes", [])]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid node record in {path}: {e}")

    seen = set()
    for node in nodes:
        if node.id in seen:
            raise ConfigurationError(f"Duplicate node id {node.id} in {path}")
        seen.add(node.id)

    return nodes, list(data.get("allocations", []))
