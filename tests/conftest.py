"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for testing trafficsim.

Usage:
    pytest tests/                    # Run all tests
    pytest tests/ -v                 # Verbose output
    pytest tests/ -k "live"          # Run only live engine tests
    pytest tests/ --quick            # Quick subset
"""

import pytest
from pathlib import Path
from typing import Dict, Any

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from trafficsim.core import GraphData


# =============================================================================
# Custom Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")


def pytest_addoption(parser):
    """Add custom command line options"""
    parser.addoption(
        "--quick",
        action="store_true",
        default=False,
        help="Skip slow tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests if --quick is specified"""
    if config.getoption("--quick"):
        skip_slow = pytest.mark.skip(reason="Skipped with --quick")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


# =============================================================================
# Graph Fixtures
# =============================================================================

def _node(node_id: str, ctype: str, shared: Dict[str, Any] = None, specific: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": ctype,
        "name": node_id.replace("-", " ").title(),
        "sharedConfig": shared or {},
        "specificConfig": specific or {},
    }


def _edge(source: str, target: str, protocol: str = "http") -> Dict[str, Any]:
    return {"id": f"{source}->{target}", "sourceId": source, "targetId": target, "protocol": protocol}


@pytest.fixture
def bottleneck_graph_dict() -> Dict[str, Any]:
    """client -> load balancer -> app server (1 x 500 rps) -> database"""
    return {
        "nodes": [
            _node("client", "client", specific={"requestsPerSecond": 1000}),
            _node("lb", "load_balancer"),
            _node("app", "app_server", shared={"scaling": {"instances": 1, "perInstanceCapacityRps": 500}}),
            _node("db", "database_sql", shared={"scaling": {"instances": 4, "perInstanceCapacityRps": 500}}),
        ],
        "connections": [
            _edge("client", "lb"),
            _edge("lb", "app"),
            _edge("app", "db", "tcp"),
        ],
    }


@pytest.fixture
def bottleneck_graph(bottleneck_graph_dict) -> GraphData:
    return GraphData.from_dict(bottleneck_graph_dict)


@pytest.fixture
def web_graph_dict() -> Dict[str, Any]:
    """Healthy three-tier design with two app servers behind a balancer and a cache."""
    app_scaling = {"scaling": {"instances": 1, "perInstanceCapacityRps": 500}}
    return {
        "nodes": [
            _node("client", "client", specific={"requestsPerSecond": 200}),
            _node("lb", "load_balancer"),
            _node("app-1", "app_server", shared=app_scaling),
            _node("app-2", "app_server", shared=app_scaling),
            _node("cache", "cache"),
            _node("db", "database_sql", shared={"scaling": {"instances": 1, "perInstanceCapacityRps": 1000}}),
        ],
        "connections": [
            _edge("client", "lb"),
            _edge("lb", "app-1"),
            _edge("lb", "app-2"),
            _edge("app-1", "cache", "tcp"),
            _edge("app-2", "cache", "tcp"),
            _edge("cache", "db", "tcp"),
        ],
    }


@pytest.fixture
def web_graph(web_graph_dict) -> GraphData:
    return GraphData.from_dict(web_graph_dict)


@pytest.fixture
def chain_graph() -> GraphData:
    """Short client -> app -> database chain over tcp for live runs."""
    return GraphData.from_dict({
        "nodes": [
            _node("client", "client", specific={"requestsPerSecond": 100}),
            _node("app", "app_server"),
            _node("db", "database_sql"),
        ],
        "connections": [
            _edge("client", "app", "tcp"),
            _edge("app", "db", "tcp"),
        ],
    })


@pytest.fixture
def no_entry_graph() -> GraphData:
    return GraphData.from_dict({
        "nodes": [_node("app", "app_server"), _node("db", "database_sql")],
        "connections": [_edge("app", "db", "tcp")],
    })
