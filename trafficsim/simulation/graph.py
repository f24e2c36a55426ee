"""
Simulation Graph

networkx-backed view of a component graph used by the engines.

Only the request-flow subgraph matters for traffic: requests move
source -> target along connections, and terminal (storage) nodes absorb
requests, so their outgoing connections (e.g. database replication) are
kept structurally but never carry request flow. Cycles are legal and are
handled by ordering nodes over the strongly connected condensation.
"""

from __future__ import annotations
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set

import networkx as nx

from ..core.catalog import is_entry, is_terminal
from ..core.models import ComponentNode, Connection, GraphData


class SimulationGraph:
    """
    Read-only topology indices over a copy of a GraphData.

    Example:
        >>> sim_graph = SimulationGraph(graph)
        >>> for node_id in sim_graph.flow_order():
        ...     print(node_id, [c.target_id for c in sim_graph.outgoing(node_id)])
    """

    def __init__(self, graph_data: GraphData):
        self.logger = logging.getLogger(__name__)
        self.data = graph_data.copy()

        # Full structural graph and request-flow subgraph
        self.graph = nx.DiGraph()
        self.flow_graph = nx.DiGraph()

        self.nodes: Dict[str, ComponentNode] = {}
        self.connections: Dict[str, Connection] = {}
        self._outgoing: Dict[str, List[Connection]] = defaultdict(list)
        self._incoming: Dict[str, List[Connection]] = defaultdict(list)

        self._load()

    def _load(self) -> None:
        for node in self.data.nodes:
            self.nodes[node.id] = node
            self.graph.add_node(node.id, type=node.type.value)
            self.flow_graph.add_node(node.id, type=node.type.value)

        for conn in self.data.connections:
            if conn.source_id not in self.nodes or conn.target_id not in self.nodes:
                continue
            self.connections[conn.id] = conn
            self.graph.add_edge(conn.source_id, conn.target_id, id=conn.id)
            if is_terminal(self.nodes[conn.source_id].type):
                continue
            self._outgoing[conn.source_id].append(conn)
            self._incoming[conn.target_id].append(conn)
            self.flow_graph.add_edge(conn.source_id, conn.target_id, id=conn.id)

        self.logger.debug(
            f"Loaded simulation graph: {len(self.nodes)} nodes, "
            f"{len(self.connections)} connections"
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def entry_ids(self) -> List[str]:
        return [n.id for n in self.data.nodes if is_entry(n.type)]

    @property
    def terminal_ids(self) -> List[str]:
        return [n.id for n in self.data.nodes if is_terminal(n.type)]

    def node(self, node_id: str) -> ComponentNode:
        return self.nodes[node_id]

    def outgoing(self, node_id: str) -> List[Connection]:
        """Request-carrying connections leaving a node, in input order."""
        return list(self._outgoing.get(node_id, []))

    def incoming(self, node_id: str) -> List[Connection]:
        return list(self._incoming.get(node_id, []))

    def reachable_from_entries(self) -> Set[str]:
        reached: Set[str] = set()
        for entry in self.entry_ids:
            reached.add(entry)
            reached |= nx.descendants(self.flow_graph, entry)
        return reached

    def flow_order(self) -> List[str]:
        """
        Nodes reachable from entries, upstream first.

        Strongly connected components are visited in topological order of
        the condensation; members of one component by distance from the
        entries, ties broken by node id.
        """
        reachable = self.reachable_from_entries()
        if not reachable:
            return []
        sub = self.flow_graph.subgraph(reachable)
        distance = nx.multi_source_dijkstra_path_length(sub, set(self.entry_ids))
        condensed = nx.condensation(sub)

        order: List[str] = []
        for scc in nx.lexicographical_topological_sort(
            condensed, key=lambda c: min(condensed.nodes[c]["members"])
        ):
            members = condensed.nodes[scc]["members"]
            order.extend(sorted(members, key=lambda n: (distance.get(n, 0), n)))
        return order

    # =========================================================================
    # Mutation (returns new instances)
    # =========================================================================

    def with_nodes(self, nodes: List[ComponentNode]) -> "SimulationGraph":
        return SimulationGraph(self.data.with_nodes(nodes))

    def without_outgoing(self, node_id: str) -> GraphData:
        """Copy of the graph with every connection leaving ``node_id`` removed."""
        data = self.data.copy()
        data.connections = [c for c in data.connections if c.source_id != node_id]
        return data

    def find_node(self, node_id: Optional[str]) -> Optional[ComponentNode]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)
