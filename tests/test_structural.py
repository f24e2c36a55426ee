"""
Tests for structural single-point-of-failure detection.
"""

import random

from trafficsim.core import GraphData
from trafficsim.simulation import DiagnosticEvent, Severity, find_structural_risks, run_batch
from trafficsim.simulation.structural import structural_risk_ids


class TestStructuralRisks:

    def test_shared_balancer_and_cache_are_risks(self, web_graph):
        # Both app servers sit behind one balancer and in front of one cache
        assert structural_risk_ids(web_graph) == ["cache", "lb"]

    def test_redundant_app_servers_are_not_risks(self, web_graph):
        flagged = structural_risk_ids(web_graph)
        assert "app-1" not in flagged
        assert "app-2" not in flagged

    def test_entries_and_terminals_are_never_flagged(self, bottleneck_graph):
        flagged = structural_risk_ids(bottleneck_graph)
        assert flagged == ["app", "lb"]

    def test_diagnostic_shape(self, bottleneck_graph):
        risk = find_structural_risks(bottleneck_graph)[0]
        assert risk.event == DiagnosticEvent.SPOF
        assert risk.severity == Severity.WARNING
        assert "single point of failure" in risk.message

    def test_order_independent(self, web_graph_dict):
        expected = structural_risk_ids(GraphData.from_dict(web_graph_dict))
        rng = random.Random(3)
        for _ in range(5):
            shuffled = {
                "nodes": list(web_graph_dict["nodes"]),
                "connections": list(web_graph_dict["connections"]),
            }
            rng.shuffle(shuffled["nodes"])
            rng.shuffle(shuffled["connections"])
            assert structural_risk_ids(GraphData.from_dict(shuffled)) == expected

    def test_idempotent(self, web_graph):
        assert find_structural_risks(web_graph) == find_structural_risks(web_graph)

    def test_included_in_batch_output(self, web_graph):
        output = run_batch(web_graph)
        assert [d.node_id for d in output.spof_diagnostics] == ["cache", "lb"]
