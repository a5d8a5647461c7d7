"""Static fog topology: node roles, tree links, latencies and routing tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import networkx as nx

from fogplace.errors import ConfigurationError, RoutingError

logger = logging.getLogger(__name__)


class NodeRole(Enum):
    CLOUD = "cloud"
    FCN = "fcn"  # fog computation node, eligible to host modules
    USER = "user"  # client device, issues placement requests


@dataclass
class FogNode:
    node_id: int
    name: str
    role: NodeRole
    cpu: float = 0.0
    ram: float = 0.0
    storage: float = 0.0
    parent_id: Optional[int] = None
    uplink_latency: float = 0.0
    cluster_peers: Dict[int, float] = field(default_factory=dict)  # peer id -> latency


class Topology:
    """Tree of fog nodes with optional sideways cluster links.

    Latency between two nodes is the weighted shortest path over the link
    graph. For the usual star layout (every edge server hangs off the cloud)
    that is ``lat(a, cloud) + lat(cloud, b)``.
    """

    def __init__(self, nodes: Optional[List[FogNode]] = None) -> None:
        self._nodes: Dict[int, FogNode] = {}
        self.graph = nx.Graph()
        self._latencies: Optional[Dict[int, Dict[int, float]]] = None
        self._paths: Dict[int, Dict[int, List[int]]] = {}
        for node in nodes or []:
            self.add_node(node)

    # ------------------------------------------------------------------ build

    def add_node(self, node: FogNode) -> None:
        if node.node_id in self._nodes:
            raise ConfigurationError(f"Duplicate node id {node.node_id}")
        if node.node_id < 0:
            raise ConfigurationError(f"Node ids must be non-negative, got {node.node_id}")
        self._nodes[node.node_id] = node
        self.graph.add_node(node.node_id)
        if node.parent_id is not None and node.parent_id in self._nodes:
            self.graph.add_edge(node.node_id, node.parent_id, latency=float(node.uplink_latency))
        # links declared by nodes added earlier
        for other in self._nodes.values():
            if other.parent_id == node.node_id:
                self.graph.add_edge(other.node_id, node.node_id, latency=float(other.uplink_latency))
            if node.node_id in other.cluster_peers:
                self.graph.add_edge(other.node_id, node.node_id, latency=float(other.cluster_peers[node.node_id]))
        for peer_id, latency in node.cluster_peers.items():
            if peer_id in self._nodes:
                self.graph.add_edge(node.node_id, peer_id, latency=float(latency))
        self._latencies = None
        self._paths = {}

    # ------------------------------------------------------------------ queries

    def node(self, node_id: int) -> FogNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise ConfigurationError(f"Unknown node id {node_id}") from None

    def by_name(self, name: str) -> FogNode:
        for node in self._nodes.values():
            if node.name == name:
                return node
        raise ConfigurationError(f"Unknown node name '{name}'")

    def nodes(self) -> List[FogNode]:
        return [self._nodes[i] for i in sorted(self._nodes)]

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    @property
    def cloud_id(self) -> int:
        for node in self.nodes():
            if node.role == NodeRole.CLOUD:
                return node.node_id
        raise ConfigurationError("Topology has no cloud node")

    def parent_of(self, node_id: int) -> Optional[int]:
        return self.node(node_id).parent_id

    def children_of(self, node_id: int) -> List[int]:
        return [n.node_id for n in self.nodes() if n.parent_id == node_id]

    def is_peer(self, node_id: int, other_id: int) -> bool:
        node = self.node(node_id)
        return other_id in node.cluster_peers or node_id in self.node(other_id).cluster_peers

    def entry_node(self, requester_id: int) -> int:
        """Node a client's request lands on first (its parent)."""
        parent = self.parent_of(requester_id)
        return requester_id if parent is None else parent

    def placement_candidates(self) -> List[FogNode]:
        return [n for n in self.nodes() if n.role == NodeRole.FCN]

    def link_latency(self, a: int, b: int) -> float:
        if a == b:
            return 0.0
        data = self.graph.get_edge_data(a, b)
        if data is None:
            raise RoutingError(f"No direct link between {a} and {b}")
        return float(data["latency"])

    def latency(self, a: int, b: int) -> float:
        if a == b:
            return 0.0
        if self._latencies is None:
            self._latencies = {
                src: dict(lengths)
                for src, lengths in nx.all_pairs_dijkstra_path_length(self.graph, weight="latency")
            }
        try:
            return float(self._latencies[a][b])
        except KeyError:
            raise RoutingError(f"Nodes {a} and {b} are not connected") from None

    def routing_table(self, node_id: int) -> Dict[int, int]:
        """Destination id -> next hop id for every node reachable from ``node_id``."""
        if node_id not in self._paths:
            self._paths[node_id] = nx.single_source_dijkstra_path(self.graph, node_id, weight="latency")
        table: Dict[int, int] = {}
        for dest, path in self._paths[node_id].items():
            if dest == node_id:
                continue
            table[dest] = path[1]
        return table


def topology_from_dict(data: Dict[str, Any]) -> Topology:
    nodes: List[FogNode] = []
    for raw in data.get("nodes", []):
        try:
            role = NodeRole(str(raw.get("role", "fcn")).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown node role: {raw.get('role')}") from None
        peers = {int(k): float(v) for k, v in (raw.get("cluster_peers") or {}).items()}
        nodes.append(
            FogNode(
                node_id=int(raw["id"]),
                name=str(raw.get("name", f"node-{raw['id']}")),
                role=role,
                cpu=float(raw.get("cpu", 0.0)),
                ram=float(raw.get("ram", 0.0)),
                storage=float(raw.get("storage", 0.0)),
                parent_id=None if raw.get("parent") is None else int(raw["parent"]),
                uplink_latency=float(raw.get("uplink_latency", 0.0)),
                cluster_peers=peers,
            )
        )
    topology = Topology(nodes)
    logger.info(f"Loaded topology: {len(nodes)} nodes, {topology.graph.number_of_edges()} links")
    return topology
