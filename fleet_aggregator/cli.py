# cli.py

"""Command-line interface for the Fleet Resource Aggregator."""

import argparse
import json
import logging
import sys
import time

from .exceptions import FleetError
from .manager import FleetManager
from .utils import load_status_page_settings, resolve_nodes_file, setup_logging

logger = logging.getLogger(__name__)

def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Node health and capacity accounting for a game server fleet"
    )
    parser.add_argument(
        "--nodes-file",
        help="JSON inventory of nodes and allocations (default: $FLEET_NODES_FILE)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--status",
        action="store_true",
        help="Probe all nodes once and print the fleet summary"
    )
    action.add_argument(
        "--status-page",
        action="store_true",
        help="Probe all nodes once and print the public status page"
    )
    action.add_argument(
        "--resources",
        action="store_true",
        help="Show declared versus committed capacity for all nodes"
    )
    action.add_argument(
        "--distribution",
        action="store_true",
        help="Show nodes and servers per location and servers per node"
    )
    action.add_argument(
        "--recommend",
        nargs=2,
        type=int,
        metavar=("MEMORY", "DISK"),
        help="Recommend a node for a server needing MEMORY and DISK MiB"
    )
    action.add_argument(
        "--daemon",
        action="store_true",
        help="Run probe cycles until interrupted"
    )
    parser.add_argument(
        "--location",
        type=int,
        help="Restrict --recommend to a location id"
    )
    return parser.parse_args(argv)

def print_json(data):
    print(json.dumps(data, indent=2, sort_keys=True))

def run_daemon(manager):
    """Run the scheduler in the foreground until Ctrl-C."""
    scheduler = manager.scheduler
    scheduler.start()
    try:
        while True:
            time.sleep(scheduler.interval)
            summary = scheduler.latest_summary()
            logger.info(
                f"{summary.healthy_nodes}/{summary.total_nodes} nodes healthy, "
                f"{summary.total_servers} servers, avg CPU {summary.avg_cpu_percent}%"
            )
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping scheduler")
    finally:
        scheduler.stop(timeout=manager.settings.cycle_budget)

def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        manager = FleetManager.from_inventory(resolve_nodes_file(args.nodes_file))

        if args.resources:
            print_json([r.to_dict() for r in manager.aggregator.node_resources()])
            return 0

        if args.distribution:
            print_json({
                **manager.aggregator.nodes_by_location(),
                **manager.aggregator.servers_by_node(),
            })
            return 0

        if args.recommend:
            memory, disk = args.recommend
            manager.scheduler.run_cycle()
            node_id = manager.advisor.recommend(memory, disk, args.location)
            if node_id is None:
                logger.error(f"No node can host {memory} MiB memory / {disk} MiB disk")
                return 1
            print_json({"node_id": node_id})
            return 0

        if args.daemon:
            run_daemon(manager)
            return 0

        summary = manager.scheduler.run_cycle()
        if args.status_page:
            print_json(manager.aggregator.status_page(
                load_status_page_settings(), summary
            ))
        else:
            print_json(summary.to_dict())
        return 0

    except FleetError as e:
        logger.error(f"Fleet error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
