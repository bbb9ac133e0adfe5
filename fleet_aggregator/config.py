# config.py

"""Configuration settings for the Fleet Resource Aggregator."""

# Probe cadence (seconds)
PROBE_TIMEOUT = 5.0  # Per-node agent request timeout
PROBE_INTERVAL = 30.0  # Matches the dashboard auto-refresh
FRESHNESS_FACTOR = 2.0  # Freshness window = interval * factor
CYCLE_BUDGET_FACTOR = 2.0  # Abandon a cycle after interval * factor
MAX_PROBE_WORKERS = 16

# Node agent defaults
DEFAULT_DAEMON_PORT = 8080
AGENT_UTILIZATION_PATH = "/api/system/utilization"
AGENT_USER_AGENT = "fleet-aggregator/0.1.0"

# Overallocation below zero disables the limit for that resource
UNLIMITED_OVERALLOCATE = -1

# Environment overrides
ENV_PROBE_TIMEOUT = "FLEET_PROBE_TIMEOUT"
ENV_PROBE_INTERVAL = "FLEET_PROBE_INTERVAL"
ENV_FRESHNESS_WINDOW = "FLEET_FRESHNESS_WINDOW"
ENV_CYCLE_BUDGET = "FLEET_CYCLE_BUDGET"
ENV_MAX_WORKERS = "FLEET_MAX_WORKERS"
ENV_NODES_FILE = "FLEET_NODES_FILE"

# Public status page toggles and their defaults
STATUS_PAGE_DEFAULTS = {
    "STATUS_PAGE_ENABLED": False,
    "STATUS_PAGE_SHOW_NODE_STATUS": True,
    "STATUS_PAGE_SHOW_LOAD_USAGE": True,
    "STATUS_PAGE_SHOW_TOTAL_SERVERS": True,
    "STATUS_PAGE_SHOW_INDIVIDUAL_NODES": False,
}

# Logging format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
