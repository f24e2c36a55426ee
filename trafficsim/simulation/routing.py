"""
Routing Policies

How a node fans flow out over its outgoing connections.

Non-balancer nodes split equally. Load balancers look up a policy by their
configured ``algorithm``; at the aggregate level round-robin,
least-connections and weighted all reduce to a split proportional to
downstream effective capacity. New algorithms can be added with
``register_split_policy``.
"""

from __future__ import annotations
import math
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence

from ..core.models import ComponentNode, ComponentType, Connection


@dataclass(frozen=True)
class RouteTarget:
    """An outgoing connection and the effective capacity behind it."""
    connection: Connection
    capacity: float


class SplitPolicy(ABC):
    """Returns normalized weights, one per target, summing to 1."""

    name: str = "abstract"

    @abstractmethod
    def weights(
        self,
        targets: Sequence[RouteTarget],
        rng: Optional[random.Random] = None,
    ) -> List[float]:
        ...


class EqualSplit(SplitPolicy):
    name = "equal"

    def weights(self, targets, rng=None):
        if not targets:
            return []
        return [1.0 / len(targets)] * len(targets)


class CapacityProportionalSplit(SplitPolicy):
    """Split in proportion to downstream effective capacity."""

    name = "capacity-proportional"

    def weights(self, targets, rng=None):
        if not targets:
            return []
        capacities = [max(0.0, t.capacity) for t in targets]
        unbounded = [math.isinf(c) for c in capacities]
        if any(unbounded):
            share = 1.0 / sum(unbounded)
            return [share if u else 0.0 for u in unbounded]
        total = sum(capacities)
        if total <= 0:
            return EqualSplit().weights(targets)
        return [c / total for c in capacities]


class RandomSplit(SplitPolicy):
    """Random weights drawn from the caller's seeded generator."""

    name = "random"

    def weights(self, targets, rng=None):
        if not targets:
            return []
        rng = rng or random.Random(0)
        draws = [rng.random() + 1e-9 for _ in targets]
        total = sum(draws)
        return [d / total for d in draws]


EQUAL_SPLIT = EqualSplit()
DEFAULT_BALANCER_POLICY = CapacityProportionalSplit()

SPLIT_POLICIES: Dict[str, SplitPolicy] = {
    "round-robin": DEFAULT_BALANCER_POLICY,
    "least-connections": DEFAULT_BALANCER_POLICY,
    "weighted": DEFAULT_BALANCER_POLICY,
    "random": RandomSplit(),
    "ip-hash": EQUAL_SPLIT,
}


def register_split_policy(algorithm: str, policy: SplitPolicy) -> None:
    SPLIT_POLICIES[algorithm] = policy


def policy_for(node: ComponentNode) -> SplitPolicy:
    """Split policy for a node: balancers by algorithm, others equal."""
    if node.type != ComponentType.LOAD_BALANCER:
        return EQUAL_SPLIT
    return SPLIT_POLICIES.get(node.spec.algorithm, DEFAULT_BALANCER_POLICY)


class SmoothWeightedPicker:
    """
    Deterministic weighted round-robin (smooth variant).

    Picks keys one at a time so that over any window the pick frequency
    matches the weights, without randomness.
    """

    def __init__(self):
        self._current: Dict[Hashable, float] = {}

    def pick(self, keys: Sequence[Hashable], weights: Sequence[float]) -> Hashable:
        if not keys:
            raise ValueError("No keys to pick from")
        total = sum(weights)
        if total <= 0:
            weights = [1.0] * len(keys)
            total = float(len(keys))
        best = None
        for key, weight in zip(keys, weights):
            self._current[key] = self._current.get(key, 0.0) + weight
            if best is None or self._current[key] > self._current[best]:
                best = key
        self._current[best] -= total
        return best
