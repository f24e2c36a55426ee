"""
Tests for the component graph model and per-type configuration layers.
"""

import pytest

from trafficsim.core import (
    APPLICABLE_LAYERS,
    ComponentNode,
    ComponentType,
    Connection,
    GraphData,
    Layer,
    Protocol,
    ScalingConfig,
    TrafficControlConfig,
    ValidationError,
)
from trafficsim.core.models import AppServerSpec, CacheSpec


class TestComponentNode:

    def test_applicable_layers_get_catalog_defaults(self):
        node = ComponentNode("app", ComponentType.APP_SERVER)
        assert node.scaling.instances == 1
        assert node.scaling.per_instance_capacity_rps == 500
        assert node.resilience is not None
        assert node.traffic_control is None
        assert node.consistency is None
        assert isinstance(node.spec, AppServerSpec)

    def test_non_applicable_layer_is_rejected(self):
        with pytest.raises(ValidationError):
            ComponentNode("c", ComponentType.CLIENT, scaling=ScalingConfig())

    def test_mismatched_spec_is_rejected(self):
        with pytest.raises(ValidationError):
            ComponentNode("app", ComponentType.APP_SERVER, spec=CacheSpec())

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            ComponentNode.from_dict({"id": "x", "type": "mainframe"})

    def test_from_dict_drops_non_applicable_layers(self):
        node = ComponentNode.from_dict({
            "id": "store",
            "type": "object_store",
            "sharedConfig": {
                "scaling": {"instances": 5},
                "consistency": {"replicationFactor": 2},
            },
            "specificConfig": {"storageClass": "archive"},
        })
        assert node.scaling is None
        assert node.consistency.replication_factor == 2
        assert node.spec.storage_class == "archive"

    def test_from_dict_reads_camel_case_and_position(self):
        node = ComponentNode.from_dict({
            "id": "gw",
            "type": "api_gateway",
            "name": "Edge Gateway",
            "position": {"x": 120, "y": 40},
            "sharedConfig": {"trafficControl": {"rateLimiting": True, "rateLimit": 250}},
        })
        assert node.name == "Edge Gateway"
        assert (node.x, node.y) == (120.0, 40.0)
        assert node.traffic_control.ceiling_rps == 250.0

    def test_malformed_number_becomes_zero(self):
        node = ComponentNode.from_dict({
            "id": "app",
            "type": "app_server",
            "sharedConfig": {"scaling": {"instances": "many"}},
        })
        assert node.scaling.instances == 0

    def test_to_dict_uses_camel_case(self):
        data = ComponentNode("app", ComponentType.APP_SERVER).to_dict()
        assert data["sharedConfig"]["scaling"]["perInstanceCapacityRps"] == 500
        assert data["specificConfig"]["instanceType"] == "medium"
        assert ComponentNode.from_dict(data).scaling == ScalingConfig(1, 500.0)

    def test_layer_table_covers_every_type(self):
        assert set(APPLICABLE_LAYERS) == set(ComponentType)
        assert APPLICABLE_LAYERS[ComponentType.CLIENT] == frozenset()
        assert Layer.TRAFFIC_CONTROL in APPLICABLE_LAYERS[ComponentType.API_GATEWAY]


class TestTrafficControl:

    def test_ceiling_only_when_enabled(self):
        assert TrafficControlConfig(rate_limiting=False, rate_limit=100).ceiling_rps is None
        assert TrafficControlConfig(rate_limiting=True, rate_limit=100).ceiling_rps == 100.0
        assert TrafficControlConfig(rate_limiting=True, rate_limit=-5).ceiling_rps == 0.0


class TestConnection:

    def test_built_from_protocol_member(self):
        conn = Connection("e", "a", "b", Protocol.TCP)
        assert conn.protocol is Protocol.TCP

    def test_default_protocol_is_http(self):
        assert Connection.from_dict({"sourceId": "a", "targetId": "b"}).protocol is Protocol.HTTP

    def test_from_dict_round_trip(self):
        data = {"id": "e", "sourceId": "a", "targetId": "b", "protocol": "tcp"}
        conn = Connection.from_dict(data)
        assert conn.protocol is Protocol.TCP
        again = Connection.from_dict(conn.to_dict())
        assert again == conn
        assert again.to_dict()["protocol"] == "tcp"


class TestGraphData:

    def test_connection_aliases(self):
        conn = Connection.from_dict({"source": "a", "target": "b", "protocol": "GRPC"})
        assert conn.id == "a->b"
        assert conn.protocol == Protocol.GRPC

    def test_unknown_protocol_is_rejected(self):
        with pytest.raises(ValidationError):
            Connection.from_dict({"sourceId": "a", "targetId": "b", "protocol": "carrier-pigeon"})

    def test_accepts_edges_key(self, web_graph_dict):
        web_graph_dict["edges"] = web_graph_dict.pop("connections")
        graph = GraphData.from_dict(web_graph_dict)
        assert len(graph.connections) == 6

    def test_with_nodes_replaces_by_id(self, web_graph):
        bigger = ComponentNode("app-1", ComponentType.APP_SERVER, scaling=ScalingConfig(4, 500.0))
        updated = web_graph.with_nodes([bigger])
        assert updated.node_map()["app-1"].scaling.instances == 4
        assert web_graph.node_map()["app-1"].scaling.instances == 1
        assert [n.id for n in updated.nodes] == [n.id for n in web_graph.nodes]

    def test_entry_nodes(self, web_graph):
        assert [n.id for n in web_graph.entry_nodes()] == ["client"]

    def test_with_nodes_rejects_type_change(self, web_graph):
        retyped = ComponentNode("client", ComponentType.APP_SERVER)
        with pytest.raises(ValidationError) as exc_info:
            web_graph.with_nodes([retyped])
        assert "client" in exc_info.value.issues[0]
        assert web_graph.node_map()["client"].type == ComponentType.CLIENT
