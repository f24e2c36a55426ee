"""
Tests for topology rules and graph validation.
"""

import pytest

from trafficsim.core import (
    ComponentType,
    GraphData,
    GraphValidator,
    Protocol,
    ValidationError,
    default_protocol,
    ensure_valid,
    protocol_warning,
    validate_connection,
)


class TestValidateConnection:

    def test_app_server_may_reach_object_store(self):
        assert validate_connection("app_server", "object_store").valid

    def test_terminal_node_has_no_outgoing_connections(self):
        check = validate_connection("object_store", "app_server")
        assert not check.valid
        assert check.message == "object_store cannot have outgoing connections"
        assert check.suggestion == "Remove connection to app_server"

    def test_illegal_pair_names_allowed_targets(self):
        check = validate_connection(ComponentType.LOAD_BALANCER, ComponentType.DATABASE_SQL)
        assert not check.valid
        assert "load_balancer should not connect directly to database_sql" == check.message
        assert check.suggestion == "Valid targets: app_server"

    def test_unknown_source_is_accepted(self):
        assert validate_connection("mainframe", "app_server").valid

    def test_to_dict(self):
        data = validate_connection("object_store", "cdn").to_dict()
        assert data["valid"] is False
        assert "suggestion" in data


class TestProtocols:

    @pytest.mark.parametrize("source,target,expected", [
        ("app_server", "database_sql", Protocol.TCP),
        ("app_server", "message_queue", Protocol.TCP),
        ("client", "cdn", Protocol.HTTP),
        ("app_server", "app_server", Protocol.GRPC),
        ("client", "load_balancer", Protocol.HTTP),
    ])
    def test_default_protocol(self, source, target, expected):
        assert default_protocol(source, target) == expected

    def test_database_over_http_warns(self):
        assert "TCP" in protocol_warning("app_server", "database_nosql", "http")

    def test_queue_over_udp_warns(self):
        assert protocol_warning("app_server", "message_queue", "udp").endswith("UDP is unreliable, consider TCP.")

    def test_recommended_protocol_has_no_warning(self):
        assert protocol_warning("app_server", "cache", "tcp") is None


class TestGraphValidator:

    def test_valid_graph(self, web_graph):
        report = GraphValidator().validate(web_graph)
        assert report.is_valid
        assert report.warnings == []

    def test_missing_entry_node_is_an_error(self, no_entry_graph):
        report = GraphValidator().validate(no_entry_graph)
        assert not report.is_valid
        assert "Graph has no entry node (type client)" in report.errors

    def test_dangling_connection_is_an_error(self, web_graph_dict):
        web_graph_dict["connections"].append(
            {"id": "ghost", "sourceId": "app-1", "targetId": "nowhere", "protocol": "tcp"}
        )
        report = GraphValidator().validate(GraphData.from_dict(web_graph_dict))
        assert any("missing target node nowhere" in e for e in report.errors)

    def test_illegal_pair_is_only_a_warning(self, web_graph_dict):
        web_graph_dict["connections"].append(
            {"id": "lb-db", "sourceId": "lb", "targetId": "db", "protocol": "tcp"}
        )
        report = GraphValidator().validate(GraphData.from_dict(web_graph_dict))
        assert report.is_valid
        assert any("lb-db" in w for w in report.warnings)

    def test_duplicate_ids(self, web_graph_dict):
        web_graph_dict["nodes"].append(dict(web_graph_dict["nodes"][1]))
        report = GraphValidator().validate(GraphData.from_dict(web_graph_dict))
        assert "Duplicate node id: lb" in report.errors

    def test_ensure_valid_raises_with_issues(self, no_entry_graph):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(no_entry_graph)
        assert exc_info.value.issues == ["Graph has no entry node (type client)"]
        assert exc_info.value.to_dict()["error"] == "validation_error"
