"""Tests for FleetAggregator summaries and the status page."""

import math

import pytest

from fleet_aggregator.exceptions import StatusPageDisabledError
from fleet_aggregator.models import StatusPageSettings

from conftest import make_node


@pytest.fixture
def fleet(manager, transport):
    manager.add_nodes([
        make_node(1, memory=8192, disk=100000),
        make_node(2, memory=16384, disk=200000, behind_proxy=True),
        make_node(3, memory=4096, disk=50000, public=False),
    ])
    transport.set_utilization(1, cpu=20.0, memory_used=2048, memory_total=8192,
                              disk_used=1000, disk_total=100000)
    transport.set_utilization(2, cpu=40.0, memory_used=4096, memory_total=16384,
                              disk_used=3000, disk_total=200000)
    transport.fail(3)
    return manager


def probe_cycle(manager):
    manager.probe.probe_all(manager.registry.probe_targets())


def test_summarize_counts_and_totals(fleet):
    fleet.ledger.reserve(1, server_id=10, memory=1024, disk=10)
    fleet.ledger.reserve(3, server_id=11, memory=1024, disk=10)
    probe_cycle(fleet)

    summary = fleet.aggregator.summarize()

    assert summary.total_nodes == 3
    assert summary.healthy_nodes == 2
    assert summary.unhealthy_nodes == 1
    assert summary.total_memory == 8192 + 16384
    assert summary.used_memory == 2048 + 4096
    assert summary.total_disk == 300000
    assert summary.used_disk == 4000
    assert summary.avg_cpu_percent == 30.0
    assert summary.total_servers == 2


def test_node_records(fleet):
    fleet.ledger.reserve(1, server_id=10, memory=4096, disk=0)
    probe_cycle(fleet)

    nodes = {n["id"]: n for n in fleet.aggregator.summarize().nodes}

    assert nodes[1]["status"] == "healthy"
    assert nodes[1]["server_count"] == 1
    assert nodes[1]["utilization"]["memory_percent"] == 25.0
    assert nodes[1]["committed"]["memory_percent"] == 50.0
    assert nodes[3]["status"] == "unhealthy"
    assert nodes[3]["utilization"] is None
    assert nodes[3]["failed_probes"] == 1


def test_zero_totals_give_zero_percent(manager, transport):
    manager.add_nodes([make_node(1, memory=0, disk=0)])
    transport.set_utilization(1, memory_used=0, memory_total=0,
                              disk_used=0, disk_total=0)
    probe_cycle(manager)

    node = manager.aggregator.summarize().nodes[0]

    assert node["utilization"]["memory_percent"] == 0.0
    assert node["utilization"]["disk_percent"] == 0.0
    assert node["committed"]["memory_percent"] == 0.0
    assert not math.isnan(node["utilization"]["memory_percent"])


def test_no_healthy_nodes_average_cpu_zero(manager, transport):
    manager.add_nodes([make_node(1)])
    transport.fail(1)
    probe_cycle(manager)

    summary = manager.aggregator.summarize()

    assert summary.healthy_nodes == 0
    assert summary.avg_cpu_percent == 0.0


def test_stale_probe_becomes_unhealthy(fleet, clock):
    probe_cycle(fleet)
    assert fleet.aggregator.summarize().healthy_nodes == 2

    clock.advance(fleet.settings.freshness_window + 1)

    summary = fleet.aggregator.summarize()
    assert summary.healthy_nodes == 0
    assert summary.unhealthy_nodes == 3


def test_maintenance_node_not_probed_and_unhealthy(manager, transport):
    manager.add_nodes([make_node(1), make_node(2, maintenance=True)])
    transport.set_utilization(1)
    transport.set_utilization(2)

    probe_cycle(manager)
    summary = manager.aggregator.summarize()

    assert 2 not in transport.calls
    nodes = {n["id"]: n for n in summary.nodes}
    assert nodes[2]["status"] == "unhealthy"
    assert nodes[2]["maintenance_mode"] is True
    assert summary.healthy_nodes == 1


def test_summarize_is_read_only(fleet):
    probe_cycle(fleet)
    before = fleet.probe.snapshot()

    first = fleet.aggregator.summarize()
    second = fleet.aggregator.summarize()

    assert first == second
    assert fleet.probe.snapshot() == before
    assert fleet.ledger.total_servers() == 0


def test_summary_serializes(fleet):
    probe_cycle(fleet)

    data = fleet.aggregator.summarize().to_dict()

    assert set(data["global"]) == {
        "total_nodes", "healthy_nodes", "unhealthy_nodes", "total_memory",
        "used_memory", "total_disk", "used_disk", "avg_cpu_percent",
    }
    assert {"id", "name", "fqdn", "status", "server_count", "utilization"} <= set(data["nodes"][0])
    assert "daemon_token" not in str(data)


def test_node_resources(fleet):
    fleet.ledger.reserve(2, server_id=1, memory=8192, disk=50000)

    resources = {r.id: r for r in fleet.aggregator.node_resources()}

    assert resources[2].allocated_memory == 8192
    assert resources[2].memory_usage_percentage == 50.0
    assert resources[2].disk_usage_percentage == 25.0
    assert resources[1].server_count == 0
    assert [r.name for r in fleet.aggregator.node_resources()] == ["node-1", "node-2", "node-3"]


def test_nodes_overview(fleet):
    fleet.registry.update(make_node(1, maintenance=True))

    overview = fleet.aggregator.nodes_overview()

    assert overview == {
        "total_nodes": 3,
        "public_nodes": 2,
        "private_nodes": 1,
        "maintenance_nodes": 1,
        "proxy_nodes": 1,
        "percentage_public": 66.67,
    }


def test_status_page_disabled(fleet):
    with pytest.raises(StatusPageDisabledError):
        fleet.aggregator.status_page(StatusPageSettings(enabled=False))


def test_status_page_default_sections(fleet):
    probe_cycle(fleet)

    page = fleet.aggregator.status_page(StatusPageSettings(enabled=True))

    assert page["enabled"] is True
    assert page["data"]["global"]["healthy_nodes"] == 2
    assert page["data"]["global"]["avg_cpu_percent"] == 30.0
    assert page["data"]["total_servers"] == 0
    assert "nodes" not in page["data"]


def test_status_page_without_load_usage(fleet):
    probe_cycle(fleet)
    settings = StatusPageSettings(
        enabled=True, show_load_usage=False, show_total_servers=False,
        show_individual_nodes=True,
    )

    page = fleet.aggregator.status_page(settings)

    assert set(page["data"]["global"]) == {"total_nodes", "healthy_nodes", "unhealthy_nodes"}
    assert "total_servers" not in page["data"]
    assert len(page["data"]["nodes"]) == 3
    assert set(page["data"]["nodes"][0]) == {
        "id", "name", "fqdn", "status", "server_count", "utilization",
    }


def test_status_page_only_total_servers(fleet):
    settings = StatusPageSettings(
        enabled=True, show_node_status=False, show_load_usage=False,
    )

    page = fleet.aggregator.status_page(settings)

    assert page["data"] == {"total_servers": 0}


def test_nodes_by_location(manager):
    manager.add_nodes([
        make_node(1, memory=1000, disk=5000, location_id=2),
        make_node(2, memory=2000, disk=5000, location_id=1),
        make_node(3, memory=3000, disk=5000, location_id=2),
        make_node(4, memory=500, disk=100, location_id=None),
    ])
    manager.ledger.reserve(1, server_id=10, memory=400, disk=100)
    manager.ledger.reserve(3, server_id=11, memory=600, disk=200)
    manager.ledger.reserve(3, server_id=12, memory=100, disk=0)

    locations = manager.aggregator.nodes_by_location()["locations"]

    assert [loc["location_id"] for loc in locations] == [2, 1, None]
    assert locations[0] == {
        "location_id": 2,
        "node_count": 2,
        "server_count": 3,
        "memory": 4000,
        "allocated_memory": 1100,
        "disk": 10000,
        "allocated_disk": 300,
    }
    assert locations[1]["server_count"] == 0
    assert locations[2]["node_count"] == 1


def test_servers_by_node(fleet):
    fleet.ledger.reserve(3, server_id=10, memory=10, disk=10)
    fleet.ledger.reserve(3, server_id=11, memory=10, disk=10)
    fleet.ledger.reserve(2, server_id=12, memory=10, disk=10)

    nodes = fleet.aggregator.servers_by_node()["nodes"]

    assert [(n["node_id"], n["server_count"]) for n in nodes] == [(3, 2), (2, 1), (1, 0)]
    assert nodes[0]["node_name"] == "node-3"
    assert nodes[0]["fqdn"] == "node3.example.com"


def test_distributions_on_empty_fleet(manager):
    assert manager.aggregator.nodes_by_location() == {"locations": []}
    assert manager.aggregator.servers_by_node() == {"nodes": []}
