"""
Tests for the capacity and protocol cost model and routing policies.
"""

import math
import random

import pytest

from trafficsim.core import ComponentNode, ComponentType, Connection, Protocol, ScalingConfig
from trafficsim.core.models import CacheSpec, CdnSpec, ObjectStoreSpec, TrafficControlConfig
from trafficsim.simulation.capacity import (
    PROTOCOL_FACTORS,
    classify_utilization,
    edge_capacity,
    edge_latency_ms,
    effective_capacity,
    hit_rate,
    node_latency_ms,
    queueing_factor,
    utilization,
)
from trafficsim.simulation.routing import (
    CapacityProportionalSplit,
    EqualSplit,
    RouteTarget,
    SmoothWeightedPicker,
    policy_for,
)
from trafficsim.core.models import LoadBalancerSpec


class TestEffectiveCapacity:

    def test_scaling_layer(self):
        node = ComponentNode("app", ComponentType.APP_SERVER, scaling=ScalingConfig(3, 400.0))
        assert effective_capacity(node) == 1200.0

    def test_rate_limit_caps_capacity(self):
        node = ComponentNode(
            "gw", ComponentType.API_GATEWAY,
            scaling=ScalingConfig(2, 3000.0),
            traffic_control=TrafficControlConfig(rate_limiting=True, rate_limit=800),
        )
        assert effective_capacity(node) == 800.0

    def test_open_circuit_has_no_capacity(self):
        node = ComponentNode("app", ComponentType.APP_SERVER)
        assert effective_capacity(node, circuit_open=True) == 0.0

    def test_client_is_unbounded(self):
        assert math.isinf(effective_capacity(ComponentNode("c", ComponentType.CLIENT)))

    def test_object_store_by_storage_class(self):
        archive = ComponentNode("s", ComponentType.OBJECT_STORE, spec=ObjectStoreSpec(storage_class="archive"))
        assert effective_capacity(archive) == 1000.0

    def test_zero_instances_means_zero_capacity(self):
        node = ComponentNode("app", ComponentType.APP_SERVER, scaling=ScalingConfig(0, 500.0))
        assert effective_capacity(node) == 0.0


class TestUtilizationAndLatency:

    def test_utilization_edges(self):
        assert utilization(0, 0) == 0.0
        assert math.isinf(utilization(10, 0))
        assert utilization(10, math.inf) == 0.0
        assert utilization(250, 500) == 0.5

    def test_queueing_starts_above_threshold(self):
        assert queueing_factor(0.5) == 1.0
        assert queueing_factor(0.8) == 1.0
        assert queueing_factor(0.9) == pytest.approx(1 / 0.11)
        assert queueing_factor(5.0) == pytest.approx(100.0)

    def test_node_latency_uses_type_base(self):
        db = ComponentNode("db", ComponentType.DATABASE_SQL)
        assert node_latency_ms(db, 0.1) == 10.0

    def test_edge_latency_adds_congestion(self):
        assert edge_latency_ms(Protocol.HTTP, 0.0) == 8.0
        assert edge_latency_ms(Protocol.TCP, 0.5) == 6.0
        # Congestion term saturates at twice capacity
        assert edge_latency_ms(Protocol.GRPC, 10.0) == edge_latency_ms(Protocol.GRPC, 2.0)

    def test_edge_capacity_uses_protocol_multiplier(self):
        conn = Connection("e", "a", "b", protocol=Protocol.GRPC, throughput_qps=1000)
        assert edge_capacity(conn) == pytest.approx(1400.0)
        assert math.isinf(edge_capacity(Connection("f", "a", "b")))

    def test_only_udp_loses_packets(self):
        lossy = [p for p, f in PROTOCOL_FACTORS.items() if f.packet_loss_rate > 0]
        assert lossy == [Protocol.UDP]

    @pytest.mark.parametrize("util,expected", [
        (0.5, None),
        (0.85, ("high_utilization", "warning")),
        (1.0, ("overloaded", "critical")),
        (math.inf, ("overloaded", "critical")),
    ])
    def test_classify_utilization(self, util, expected):
        assert classify_utilization(util) == expected


class TestHitRate:

    def test_configured_rate(self):
        cache = ComponentNode("c", ComponentType.CACHE)
        assert hit_rate(cache) == pytest.approx(0.85)

    def test_short_ttl_lowers_rate(self):
        cdn = ComponentNode("cdn", ComponentType.CDN, spec=CdnSpec(cache_ttl=60))
        assert hit_rate(cdn) == pytest.approx(0.70)

    def test_rate_is_clamped(self):
        cache = ComponentNode("c", ComponentType.CACHE, spec=CacheSpec(
            hit_rate=0.98, default_ttl=86400, read_strategy="read-through", eviction_policy="lfu",
        ))
        assert hit_rate(cache) == 0.99

    def test_non_caching_types_never_hit(self):
        assert hit_rate(ComponentNode("app", ComponentType.APP_SERVER)) == 0.0


class TestRouting:

    def _targets(self, *capacities):
        return [RouteTarget(Connection(f"e{i}", "lb", f"app{i}"), c) for i, c in enumerate(capacities)]

    def test_proportional_split(self):
        weights = CapacityProportionalSplit().weights(self._targets(500, 1500))
        assert weights == pytest.approx([0.25, 0.75])

    def test_proportional_split_with_no_capacity_is_equal(self):
        assert CapacityProportionalSplit().weights(self._targets(0, 0)) == pytest.approx([0.5, 0.5])

    def test_policy_lookup(self):
        lb = ComponentNode("lb", ComponentType.LOAD_BALANCER, spec=LoadBalancerSpec(algorithm="weighted"))
        assert isinstance(policy_for(lb), CapacityProportionalSplit)
        assert isinstance(policy_for(ComponentNode("app", ComponentType.APP_SERVER)), EqualSplit)

    def test_random_policy_is_seeded(self):
        lb = ComponentNode("lb", ComponentType.LOAD_BALANCER, spec=LoadBalancerSpec(algorithm="random"))
        targets = self._targets(1, 1, 1)
        first = policy_for(lb).weights(targets, random.Random(5))
        second = policy_for(lb).weights(targets, random.Random(5))
        assert first == second
        assert sum(first) == pytest.approx(1.0)

    def test_smooth_weighted_picker_follows_weights(self):
        picker = SmoothWeightedPicker()
        picks = [picker.pick(["a", "b"], [0.75, 0.25]) for _ in range(8)]
        assert picks.count("a") == 6
        assert picks.count("b") == 2
        # The lighter key is never picked twice in a row
        assert "bb" not in "".join(picks)
