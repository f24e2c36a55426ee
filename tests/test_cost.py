"""
Tests for monthly cost estimation.
"""

import pytest

from trafficsim.core import ComponentNode, ComponentType, ScalingConfig, estimate_design_cost, estimate_node_cost
from trafficsim.core.cost import cost_breakdown
from trafficsim.core.models import (
    AppServerSpec,
    CacheSpec,
    CdnSpec,
    MessageQueueSpec,
    NoSqlDatabaseSpec,
    ObjectStoreSpec,
    SqlDatabaseSpec,
)


@pytest.mark.parametrize("node,expected", [
    (ComponentNode("c", ComponentType.CLIENT), 0.0),
    (ComponentNode("cdn", ComponentType.CDN, spec=CdnSpec(origin_shield=True)), 120.0),
    (ComponentNode("lb", ComponentType.LOAD_BALANCER, scaling=ScalingConfig(2, 5000.0)), 100.0),
    (ComponentNode("gw", ComponentType.API_GATEWAY), 70.0),
    (ComponentNode("app", ComponentType.APP_SERVER, spec=AppServerSpec(instance_type="large"),
                   scaling=ScalingConfig(3, 500.0)), 480.0),
    (ComponentNode("cache", ComponentType.CACHE, spec=CacheSpec(max_memory_gb=4, cluster_mode=True),
                   scaling=ScalingConfig(2, 10000.0)), 150.0),
    (ComponentNode("db", ComponentType.DATABASE_SQL, spec=SqlDatabaseSpec(engine="mysql", read_replicas=1,
                                                                         storage_gb=200)), 740.0),
    (ComponentNode("nosql", ComponentType.DATABASE_NOSQL, spec=NoSqlDatabaseSpec(engine="mongodb")), 562.5),
    (ComponentNode("s3", ComponentType.OBJECT_STORE, spec=ObjectStoreSpec(storage_gb=1000)), 23.0),
    (ComponentNode("mq", ComponentType.MESSAGE_QUEUE, spec=MessageQueueSpec(queue_type="kafka"),
                   scaling=ScalingConfig(3, 5000.0)), 330.0),
])
def test_node_cost(node, expected):
    assert estimate_node_cost(node) == pytest.approx(expected)


def test_design_cost_is_sum_of_breakdown(web_graph):
    breakdown = cost_breakdown(web_graph)
    assert set(breakdown) == {n.id for n in web_graph.nodes}
    assert estimate_design_cost(web_graph) == pytest.approx(sum(breakdown.values()))
    # lb 50 + 2 apps 160 + cache 12.5 + db 410
    assert estimate_design_cost(web_graph) == pytest.approx(632.5)
