"""
Component Inspector

Per-node counters behind the live inspector view, and a bounded cache
entry simulator that shows which keys a cache holds and which one it
would evict next under the configured policy.
"""

from __future__ import annotations
import random
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.models import ComponentNode, ComponentType
from .capacity import rate_limit


CACHE_KEY_POOL: List[str] = (
    [f"/user/{i}" for i in range(1, 13)]
    + [f"/product/{i}" for i in range(1, 9)]
    + [f"/session/{i}" for i in range(1, 5)]
)
CACHE_ENTRIES_CAP = 1000
DEFAULT_CACHE_ENTRIES = 24


@dataclass
class CacheEntryState:
    key: str
    inserted_at: int
    last_access_at: int
    access_count: int = 1


class CacheEntrySimulator:
    """
    Bounded key set with eviction by policy.

    Policies: lru, lfu, fifo, random, ttl-based. TTLs are compressed to
    ticks (at least 60) so expiry is visible during a live run.
    """

    def __init__(self, max_entries: int, eviction_policy: str, ttl: int, rng: random.Random):
        self.max_entries = min(max(1, max_entries), CACHE_ENTRIES_CAP)
        self.eviction_policy = eviction_policy or "lru"
        self.ttl = ttl
        self.evictions = 0
        self._rng = rng
        self._tick = 0
        self._entries: Dict[str, CacheEntryState] = {}

    @property
    def ttl_ticks(self) -> int:
        return max(60, self.ttl * 2)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def advance_tick(self) -> None:
        self._tick += 1
        if self.eviction_policy == "ttl-based" and self.ttl > 0:
            expired = [k for k, e in self._entries.items() if self._tick - e.inserted_at > self.ttl_ticks]
            for key in expired:
                del self._entries[key]

    def record_hit(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            self.record_miss(key)
            return
        entry.last_access_at = self._tick
        entry.access_count += 1

    def record_miss(self, key: str) -> None:
        if key in self._entries:
            return
        if len(self._entries) >= self.max_entries:
            victim = self._eviction_candidate()
            if victim is not None:
                del self._entries[victim]
                self.evictions += 1
        self._entries[key] = CacheEntryState(key, self._tick, self._tick)

    def _eviction_candidate(self) -> Optional[str]:
        if not self._entries:
            return None
        entries = list(self._entries.values())
        policy = self.eviction_policy
        if policy == "lru":
            return min(entries, key=lambda e: e.last_access_at).key
        if policy == "lfu":
            return min(entries, key=lambda e: e.access_count).key
        if policy == "fifo":
            return min(entries, key=lambda e: e.inserted_at).key
        if policy == "random":
            return self._rng.choice(entries).key
        if policy == "ttl-based":
            expired = [e for e in entries if self._tick - e.inserted_at > self.ttl_ticks]
            return min(expired or entries, key=lambda e: e.inserted_at).key
        return entries[0].key

    def entries(self) -> List[Dict[str, Any]]:
        """Entries with the eviction candidate (if full) listed first."""
        victim = self._eviction_candidate() if len(self._entries) >= self.max_entries else None
        rows = [
            {
                "key": e.key,
                "age": max(0, self._tick - e.inserted_at),
                "ttl": self.ttl,
                "accessCount": e.access_count,
                "willEvict": e.key == victim,
            }
            for e in self._entries.values()
        ]
        return sorted(rows, key=lambda row: not row["willEvict"])

    @staticmethod
    def key_for(sequence: int) -> str:
        return CACHE_KEY_POOL[abs(sequence) % len(CACHE_KEY_POOL)]


class ComponentInspector:
    """Counts per-type events for every node of a live run."""

    def __init__(self, rng: random.Random):
        self._rng = rng
        self.hits: Dict[str, int] = defaultdict(int)
        self.misses: Dict[str, int] = defaultdict(int)
        self.backend_sent: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.limited: Dict[str, int] = defaultdict(int)
        self.enqueued: Dict[str, int] = defaultdict(int)
        self.processed: Dict[str, int] = defaultdict(int)
        self.dead_lettered: Dict[str, int] = defaultdict(int)
        self.reads: Dict[str, int] = defaultdict(int)
        self.writes: Dict[str, int] = defaultdict(int)
        self.caches: Dict[str, CacheEntrySimulator] = {}
        self._key_sequence = 0

    def _cache(self, node: ComponentNode) -> CacheEntrySimulator:
        sim = self.caches.get(node.id)
        if sim is None:
            spec = node.spec
            sim = CacheEntrySimulator(
                DEFAULT_CACHE_ENTRIES, spec.eviction_policy, spec.default_ttl, self._rng
            )
            self.caches[node.id] = sim
        return sim

    # =========================================================================
    # Recording
    # =========================================================================

    def record_lookup(self, node: ComponentNode, hits: int, misses: int) -> None:
        self.hits[node.id] += hits
        self.misses[node.id] += misses
        if node.type != ComponentType.CACHE:
            return
        cache = self._cache(node)
        for _ in range(min(hits + misses, 4)):
            key = CacheEntrySimulator.key_for(self._key_sequence)
            self._key_sequence += 1
            if hits and key in cache:
                cache.record_hit(key)
            else:
                cache.record_miss(key)

    def record_forward(self, node: ComponentNode, target_id: str, count: int) -> None:
        if node.type == ComponentType.LOAD_BALANCER:
            self.backend_sent[node.id][target_id] += count

    def record_absorbed(self, node: ComponentNode, count: int) -> None:
        if node.type == ComponentType.MESSAGE_QUEUE:
            self.enqueued[node.id] += count
        elif node.type in (ComponentType.DATABASE_SQL, ComponentType.DATABASE_NOSQL):
            # Roughly 80/20 read/write mix
            writes = sum(1 for _ in range(count) if self._rng.random() < 0.2)
            self.reads[node.id] += count - writes
            self.writes[node.id] += writes

    def record_rejected(self, node: ComponentNode, count: int) -> None:
        if node.type == ComponentType.API_GATEWAY:
            self.limited[node.id] += count
        elif node.type == ComponentType.MESSAGE_QUEUE and node.spec.dead_letter_queue:
            self.dead_lettered[node.id] += count

    def advance(self, node: ComponentNode, capacity_rps: float, sim_seconds: float) -> None:
        """Drain queues at capacity and age cache entries by one tick."""
        if node.type == ComponentType.MESSAGE_QUEUE:
            depth = self.enqueued[node.id] - self.processed[node.id]
            if capacity_rps == float("inf"):
                drained = depth
            else:
                drained = min(depth, max(1, int(capacity_rps * sim_seconds)))
            self.processed[node.id] += max(0, drained)
        elif node.type == ComponentType.CACHE and node.id in self.caches:
            self.caches[node.id].advance_tick()

    def queue_depth(self, node_id: str) -> int:
        return max(0, self.enqueued[node_id] - self.processed[node_id])

    # =========================================================================
    # Detail View
    # =========================================================================

    def detail(
        self,
        node: ComponentNode,
        node_names: Dict[str, str],
        downstream: List[str],
        active: Dict[str, int],
        capacity_rps: float,
        utilization: float,
        arrivals: int,
    ) -> Dict[str, Any]:
        spec = node.spec
        ctype = node.type
        detail: Dict[str, Any] = {"kind": ctype.value}
        capacity = None if capacity_rps == float("inf") else round(capacity_rps, 2)

        if ctype in (ComponentType.CACHE, ComponentType.CDN):
            hits, misses = self.hits[node.id], self.misses[node.id]
            total = hits + misses
            detail.update(hitRate=hits / total if total else 0.0, hits=hits, misses=misses)
            if ctype == ComponentType.CACHE:
                cache = self._cache(node)
                detail.update(
                    entries=cache.entries(),
                    evictions=cache.evictions,
                    evictionPolicy=spec.eviction_policy,
                    readStrategy=spec.read_strategy,
                    writeStrategy=spec.write_strategy,
                    ttl=spec.default_ttl,
                    maxEntries=cache.max_entries,
                )
            else:
                detail.update(edgeLocations=spec.edge_locations, ttl=spec.cache_ttl)
        elif ctype == ComponentType.LOAD_BALANCER:
            sent = self.backend_sent.get(node.id, {})
            detail.update(
                algorithm=spec.algorithm,
                backends=[
                    {
                        "nodeId": target,
                        "name": node_names.get(target, target),
                        "sentRequests": sent.get(target, 0),
                        "activeConnections": active.get(target, 0),
                    }
                    for target in downstream
                ],
            )
        elif ctype == ComponentType.APP_SERVER:
            detail.update(
                activeInstances=node.scaling.instances if node.scaling else 1,
                maxInstances=spec.max_instances,
                autoScaling=spec.auto_scaling,
                instanceType=spec.instance_type,
            )
        elif ctype == ComponentType.DATABASE_SQL:
            detail.update(
                engine=spec.engine,
                readCapacity=None if capacity is None else round(capacity * 0.8),
                writeCapacity=None if capacity is None else round(capacity * 0.2),
                readReplicas=spec.read_replicas,
                connectionPooling=spec.connection_pooling,
                activeConnections=active.get(node.id, 0),
                reads=self.reads[node.id],
                writes=self.writes[node.id],
            )
        elif ctype == ComponentType.DATABASE_NOSQL:
            detail.update(
                engine=spec.engine,
                consistencyLevel=spec.consistency_level,
                capacity=capacity,
                utilization=round(utilization, 4),
                reads=self.reads[node.id],
                writes=self.writes[node.id],
            )
        elif ctype == ComponentType.MESSAGE_QUEUE:
            detail.update(
                partitions=node.scaling.instances if node.scaling else 1,
                isFifo=spec.queue_type == "fifo",
                queueDepth=self.queue_depth(node.id),
                enqueued=self.enqueued[node.id],
                processed=self.processed[node.id],
                deadLettered=self.dead_lettered[node.id],
            )
        elif ctype == ComponentType.OBJECT_STORE:
            detail.update(
                storageClass=spec.storage_class,
                capacity=capacity,
                utilization=round(utilization, 4),
            )
        elif ctype == ComponentType.API_GATEWAY:
            ceiling = rate_limit(node)
            limited = self.limited[node.id]
            detail.update(
                authEnabled=spec.auth_enabled,
                rateLimiting=ceiling is not None,
                rateLimit=ceiling,
                allowed=max(0, arrivals - limited),
                dropped=limited,
            )
        elif ctype == ComponentType.CLIENT:
            detail.update(requestsPerSecond=spec.requests_per_second)
        return detail
