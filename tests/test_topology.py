import pytest

from conftest import CLOUD, GW_BIG, GW_SMALL, USER

from fogplace.errors import ConfigurationError, RoutingError
from fogplace.topology import FogNode, NodeRole, Topology, topology_from_dict


def test_latency_goes_through_the_cloud(topology):
    assert topology.latency(GW_BIG, GW_SMALL) == 20
    assert topology.latency(USER, GW_SMALL) == 21
    assert topology.latency(GW_BIG, GW_BIG) == 0


def test_routing_table_next_hops(topology):
    table = topology.routing_table(USER)
    assert table == {GW_BIG: GW_BIG, CLOUD: GW_BIG, GW_SMALL: GW_BIG}
    assert topology.routing_table(CLOUD)[USER] == GW_BIG


def test_cluster_link_shortcuts_the_tree():
    topo = topology_from_dict(
        {
            "nodes": [
                {"id": 0, "name": "cloud", "role": "cloud"},
                {"id": 1, "name": "a", "role": "fcn", "parent": 0, "uplink_latency": 10, "cluster_peers": {2: 3}},
                {"id": 2, "name": "b", "role": "fcn", "parent": 0, "uplink_latency": 10},
            ]
        }
    )
    assert topo.latency(1, 2) == 3
    assert topo.routing_table(1)[2] == 2
    assert topo.is_peer(2, 1)


def test_peer_declared_on_a_later_node():
    topo = Topology(
        [
            FogNode(0, "cloud", NodeRole.CLOUD),
            FogNode(1, "a", NodeRole.FCN, parent_id=0, uplink_latency=10),
            FogNode(2, "b", NodeRole.FCN, parent_id=0, uplink_latency=10, cluster_peers={1: 4}),
        ]
    )
    assert topo.link_latency(1, 2) == 4


def test_link_latency_requires_a_direct_link(topology):
    assert topology.link_latency(USER, GW_BIG) == 1
    with pytest.raises(RoutingError):
        topology.link_latency(USER, GW_SMALL)


def test_entry_node_and_candidates(topology):
    assert topology.entry_node(USER) == GW_BIG
    assert topology.entry_node(CLOUD) == CLOUD
    assert [n.node_id for n in topology.placement_candidates()] == [GW_BIG, GW_SMALL]
    assert topology.cloud_id == CLOUD
    assert topology.children_of(CLOUD) == [GW_BIG, GW_SMALL]


def test_duplicate_and_negative_ids_rejected(topology):
    with pytest.raises(ConfigurationError):
        topology.add_node(FogNode(GW_BIG, "again", NodeRole.FCN))
    with pytest.raises(ConfigurationError):
        topology.add_node(FogNode(-1, "neg", NodeRole.FCN))


def test_unknown_role_rejected():
    with pytest.raises(ConfigurationError):
        topology_from_dict({"nodes": [{"id": 0, "role": "satellite"}]})
