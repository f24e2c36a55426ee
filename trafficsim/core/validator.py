"""
Graph Validator

Pre-flight validation shared by the batch and live engines.

Hard errors (block simulation):
    - zero entry nodes
    - connections referencing missing nodes
    - duplicate node ids

Soft warnings (reported, never blocking):
    - illegal type pairs per the topology rules
    - unusual protocol choices
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import ValidationError
from .models import GraphData
from .rules import protocol_warning, validate_connection


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class GraphValidator:
    """Classifies a graph without modifying it."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate(self, graph: GraphData) -> ValidationReport:
        report = ValidationReport()
        seen = set()
        for node in graph.nodes:
            if node.id in seen:
                report.errors.append(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        if not graph.entry_nodes():
            report.errors.append("Graph has no entry node (type client)")

        nodes = graph.node_map()
        for conn in graph.connections:
            source = nodes.get(conn.source_id)
            target = nodes.get(conn.target_id)
            if source is None:
                report.errors.append(
                    f"Connection {conn.id} references missing source node {conn.source_id}"
                )
            if target is None:
                report.errors.append(
                    f"Connection {conn.id} references missing target node {conn.target_id}"
                )
            if source is None or target is None:
                continue

            check = validate_connection(source.type, target.type)
            if not check.valid:
                report.warnings.append(f"Connection {conn.id}: {check.message}")
            warning = protocol_warning(source.type, target.type, conn.protocol)
            if warning:
                report.warnings.append(f"Connection {conn.id}: {warning}")

        if report.errors:
            self.logger.info(f"Graph validation failed with {len(report.errors)} error(s)")
        return report

    def ensure_valid(self, graph: GraphData) -> ValidationReport:
        """Validate and raise ValidationError on any hard error."""
        report = self.validate(graph)
        if not report.is_valid:
            raise ValidationError(report.errors)
        return report


def ensure_valid(graph: GraphData) -> ValidationReport:
    return GraphValidator().ensure_valid(graph)
