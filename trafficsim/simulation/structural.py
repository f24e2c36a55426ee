"""
Structural Risk Analysis

Single-point-of-failure detection from graph structure alone,
independent of any load scenario.

A node is a structural risk when removing it disconnects some entry node
from a terminal/storage node that the entry could reach before.
Only request-flow connections count; results are sorted by node id so
input ordering never changes the outcome.
"""

from __future__ import annotations
import logging
from typing import Dict, List, Set

import networkx as nx

from ..core.catalog import is_entry, is_terminal
from ..core.models import GraphData
from .graph import SimulationGraph
from .models import Diagnostic, DiagnosticEvent, Severity

logger = logging.getLogger(__name__)


def _reachable_terminals(flow_graph: nx.DiGraph, entries: List[str], terminals: Set[str]) -> Dict[str, Set[str]]:
    return {
        entry: nx.descendants(flow_graph, entry) & terminals
        for entry in entries
        if entry in flow_graph
    }


def find_structural_risks(graph) -> List[Diagnostic]:
    """
    Diagnose every non-entry, non-terminal node whose removal cuts an
    entry off from storage it could previously reach.

    Args:
        graph: SimulationGraph or GraphData
    """
    sim_graph = graph if isinstance(graph, SimulationGraph) else SimulationGraph(graph)
    flow_graph = sim_graph.flow_graph
    entries = sorted(sim_graph.entry_ids)
    terminals = set(sim_graph.terminal_ids)
    baseline = _reachable_terminals(flow_graph, entries, terminals)

    risks: List[Diagnostic] = []
    for node_id in sorted(sim_graph.nodes):
        node = sim_graph.node(node_id)
        if is_entry(node.type) or is_terminal(node.type):
            continue

        reduced = flow_graph.copy()
        reduced.remove_node(node_id)
        after = _reachable_terminals(reduced, entries, terminals)

        lost: Dict[str, Set[str]] = {
            entry: baseline[entry] - after.get(entry, set())
            for entry in baseline
        }
        lost = {entry: cut for entry, cut in lost.items() if cut}
        if not lost:
            continue

        cut_terminals = sorted(set().union(*lost.values()))
        instances = node.scaling.instances if node.scaling is not None else 1
        risks.append(Diagnostic(
            node_id=node_id,
            node_name=node.name,
            event=DiagnosticEvent.SPOF,
            severity=Severity.WARNING,
            message=(
                f"{node.name} is a single point of failure: losing it disconnects "
                f"{', '.join(sorted(lost))} from {', '.join(cut_terminals)}"
            ),
            suggestion=(
                "Add a redundant path around this component"
                if instances > 1 else
                "Add a redundant path or run more than one instance"
            ),
        ))

    logger.debug(f"Structural analysis flagged {len(risks)} node(s)")
    return risks


def structural_risk_ids(graph: GraphData) -> List[str]:
    return [d.node_id for d in find_structural_risks(graph)]
