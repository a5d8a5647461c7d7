import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from fogplace.application import AppEdge, AppModule, Application
from fogplace.config import PlacementConfig
from fogplace.ledger import CPU, RAM, STORAGE, ResourceAvailability
from fogplace.request import PlacementRequest
from fogplace.topology import FogNode, NodeRole, Topology

CLOUD, GW_BIG, GW_SMALL, USER = 0, 1, 2, 3


def build_topology(big_cpu=100.0, small_cpu=50.0, cloud_cpu=10000.0):
    """Cloud with two gateways (uplink 10) and one user under the first gateway (uplink 1)."""
    return Topology(
        [
            FogNode(CLOUD, "cloud", NodeRole.CLOUD, cpu=cloud_cpu, ram=10000, storage=10000),
            FogNode(GW_BIG, "gw-big", NodeRole.FCN, cpu=big_cpu, ram=100, storage=100, parent_id=CLOUD, uplink_latency=10),
            FogNode(GW_SMALL, "gw-small", NodeRole.FCN, cpu=small_cpu, ram=100, storage=100, parent_id=CLOUD, uplink_latency=10),
            FogNode(USER, "user", NodeRole.USER, cpu=10, ram=10, storage=10, parent_id=GW_BIG, uplink_latency=1),
        ]
    )


def build_chain_app(m1_cpu=60.0, m2_cpu=40.0, m2_storage=0.0, pinned=None, app_id="chain"):
    """client -> M1 -> M2, all UP edges."""
    return Application(
        app_id=app_id,
        modules=[
            AppModule("client", cpu=0, ram=0),
            AppModule("M1", cpu=m1_cpu, ram=10),
            AppModule("M2", cpu=m2_cpu, ram=10, storage=m2_storage),
        ],
        edges=[
            AppEdge("client", "M1", tuple_type="RAW"),
            AppEdge("M1", "M2", tuple_type="PROCESSED"),
        ],
        pinned=pinned or {},
    )


def build_resources(topology):
    resources = ResourceAvailability()
    for node in topology.nodes():
        if node.role == NodeRole.USER:
            continue
        resources.initialize(node.node_id, {CPU: node.cpu, RAM: node.ram, STORAGE: node.storage})
    return resources


def make_request(sensor_id=1, request_index=0, app_id="chain", requester=USER):
    return PlacementRequest(
        application_id=app_id,
        sensor_id=sensor_id,
        request_index=request_index,
        requester_id=requester,
        placed={"client": requester},
    )


@pytest.fixture
def topology():
    return build_topology()


@pytest.fixture
def chain_app():
    return build_chain_app()


@pytest.fixture
def applications(chain_app):
    return {chain_app.app_id: chain_app}


@pytest.fixture
def resources(topology):
    return build_resources(topology)


@pytest.fixture
def fast_config():
    """Small search budgets so the stochastic heuristics finish quickly."""
    config = PlacementConfig()
    config.annealing.initial_temperature = 10.0
    config.annealing.cooling_factor = 0.5
    config.aco.ants = 5
    config.aco.iterations = 2
    config.solver.max_time_in_seconds = 5.0
    return config


def chain_scenario_dict(**placement):
    """Scenario equivalent of ``build_topology``/``build_chain_app`` with uplink 5."""
    options = {"heuristic": "BEST_FIT", "placement_interval": 50.0, "execution_timeout": 30.0}
    options.update(placement)
    return {
        "placement": options,
        "nodes": [
            {"id": 0, "name": "cloud", "role": "cloud", "cpu": 10000, "ram": 10000, "storage": 10000},
            {"id": 1, "name": "gw-big", "role": "fcn", "cpu": 100, "ram": 100, "storage": 100, "parent": 0, "uplink_latency": 5},
            {"id": 2, "name": "gw-small", "role": "fcn", "cpu": 50, "ram": 100, "storage": 100, "parent": 0, "uplink_latency": 5},
            {"id": 3, "name": "user", "role": "user", "cpu": 10, "ram": 10, "storage": 10, "parent": 1, "uplink_latency": 1},
        ],
        "applications": [
            {
                "id": "chain",
                "modules": [
                    {"name": "client", "cpu": 0},
                    {"name": "M1", "cpu": 60, "ram": 10},
                    {"name": "M2", "cpu": 40, "ram": 10},
                ],
                "edges": [
                    {"source": "client", "destination": "M1", "tuple_type": "RAW"},
                    {"source": "M1", "destination": "M2", "tuple_type": "PROCESSED"},
                ],
            }
        ],
        "requests": [{"app": "chain", "sensor": 1, "index": 0, "requester": "user", "time": 0.0}],
    }
