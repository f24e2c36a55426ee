"""
Cost Calculator

Monthly cost estimate per component, keyed by type and configuration.
This is the single cost function used by the batch engine, the live
engine and the cost summary endpoint, so one design never shows two
different numbers.
"""

from typing import Dict

from .models import ComponentNode, ComponentType, GraphData


SQL_ENGINE_COST = {"postgresql": 400.0, "mysql": 350.0, "aurora": 600.0}
NOSQL_ENGINE_COST = {"dynamodb": 250.0, "mongodb": 550.0, "cassandra": 750.0}
INSTANCE_TYPE_MULTIPLIER = {"small": 0.5, "medium": 1.0, "large": 2.0, "xlarge": 4.0}
PER_INSTANCE_COST = {
    ComponentType.LOAD_BALANCER: 50.0,
    ComponentType.API_GATEWAY: 35.0,
    ComponentType.APP_SERVER: 80.0,
}


def _instances(node: ComponentNode) -> int:
    if node.scaling is None:
        return 1
    return max(0, node.scaling.instances)


def estimate_node_cost(node: ComponentNode) -> float:
    """Estimated monthly cost (USD) of a single node."""
    spec = node.spec
    ctype = node.type

    if ctype == ComponentType.CLIENT:
        cost = 0.0
    elif ctype == ComponentType.CDN:
        cost = 100.0 * (1.2 if spec.origin_shield else 1.0)
    elif ctype in (ComponentType.LOAD_BALANCER, ComponentType.API_GATEWAY):
        cost = PER_INSTANCE_COST[ctype] * _instances(node)
    elif ctype == ComponentType.APP_SERVER:
        multiplier = INSTANCE_TYPE_MULTIPLIER.get(spec.instance_type, 1.0)
        cost = PER_INSTANCE_COST[ctype] * _instances(node) * multiplier
    elif ctype == ComponentType.CACHE:
        cost = max(0.0, spec.max_memory_gb) * 12.5 * _instances(node)
        if spec.cluster_mode:
            cost *= 1.5
    elif ctype == ComponentType.DATABASE_SQL:
        base = SQL_ENGINE_COST.get(spec.engine, 400.0)
        storage = max(0.0, spec.storage_gb) * 0.10
        cost = (base + storage) * (1 + max(0, spec.read_replicas)) * _instances(node)
    elif ctype == ComponentType.DATABASE_NOSQL:
        base = NOSQL_ENGINE_COST.get(spec.engine, 250.0)
        cost = (base + max(0.0, spec.storage_gb) * 0.25) * _instances(node)
    elif ctype == ComponentType.OBJECT_STORE:
        cost = max(0.0, spec.storage_gb) * 0.023
    elif ctype == ComponentType.MESSAGE_QUEUE:
        partitions = _instances(node) if spec.queue_type == "kafka" else 0
        cost = 300.0 + partitions * 10.0
    else:
        cost = 0.0
    return round(cost, 2)


def cost_breakdown(graph: GraphData) -> Dict[str, float]:
    return {node.id: estimate_node_cost(node) for node in graph.nodes}


def estimate_design_cost(graph: GraphData) -> float:
    """Total estimated monthly cost of every node in the design."""
    return round(sum(cost_breakdown(graph).values()), 2)
