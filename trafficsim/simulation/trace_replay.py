"""
Deterministic Trace Replay

Replays already-computed TracedRequests against a virtual clock, without
consulting any graph or capacity state. Given the same traces and speed,
the same clock value always yields the same frame.

Timeline per request (request i starts ``i x stagger_ms`` after the first):
    waiting     before its start
    processing  between a hop's arrival and departure
    traveling   between a hop's departure and the next hop's arrival
    done        after the last hop's departure
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from .models import HopStatus, TracedRequest

logger = logging.getLogger(__name__)


class ReplayPhase(Enum):
    WAITING = "waiting"
    TRAVELING = "traveling"
    PROCESSING = "processing"
    DONE = "done"


class ReplayState(Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class ReplayCursor:
    request_id: str
    hop_index: int
    phase: ReplayPhase
    progress: float
    component_id: Optional[str]
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "hopIndex": self.hop_index,
            "phase": self.phase.value,
            "progress": round(self.progress, 4),
            "componentId": self.component_id,
            "status": self.status,
        }


@dataclass(frozen=True)
class ReplayFrame:
    clock_ms: float
    cursors: tuple
    active_ids: FrozenSet[str]
    cache_hit_ids: FrozenSet[str]
    error_ids: FrozenSet[str]
    requests_processed: int
    finished: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clockMs": round(self.clock_ms, 3),
            "cursors": [c.to_dict() for c in self.cursors],
            "activeIds": sorted(self.active_ids),
            "cacheHitIds": sorted(self.cache_hit_ids),
            "errorIds": sorted(self.error_ids),
            "requestsProcessed": self.requests_processed,
            "finished": self.finished,
        }


class TraceReplay:
    """
    Plays back traced requests hop by hop.

    Example:
        >>> replay = TraceReplay(traces, playback_speed=2.0)
        >>> replay.start()
        >>> frame = replay.advance(16.7)
        >>> [c.phase for c in frame.cursors]
    """

    def __init__(
        self,
        traces: Sequence[TracedRequest],
        playback_speed: float = 1.0,
        stagger_ms: float = 100.0,
        time_scale: float = 1.0,
    ):
        self.traces: List[TracedRequest] = [t for t in traces if t.hops]
        self.playback_speed = max(0.0, float(playback_speed))
        self.stagger_ms = max(0.0, float(stagger_ms))
        self.time_scale = max(0.0, float(time_scale))
        self.state = ReplayState.STOPPED
        self.clock_ms = 0.0
        if len(self.traces) < len(traces):
            logger.debug(f"Skipped {len(traces) - len(self.traces)} trace(s) without hops")

    # =========================================================================
    # Controls
    # =========================================================================

    def start(self) -> None:
        self.state = ReplayState.PLAYING

    def pause(self) -> None:
        if self.state == ReplayState.PLAYING:
            self.state = ReplayState.PAUSED

    def stop(self) -> None:
        self.state = ReplayState.STOPPED
        self.clock_ms = 0.0

    def set_playback_speed(self, speed: float) -> None:
        self.playback_speed = max(0.0, float(speed))

    def advance(self, delta_ms: float) -> ReplayFrame:
        """Move the virtual clock by ``delta_ms x playback speed`` while playing."""
        if self.state == ReplayState.PLAYING:
            self.clock_ms += max(0.0, float(delta_ms)) * self.playback_speed
        frame = self.frame_at(self.clock_ms)
        if frame.finished and self.state == ReplayState.PLAYING:
            self.state = ReplayState.PAUSED
        return frame

    @property
    def total_duration_ms(self) -> float:
        if not self.traces:
            return 0.0
        return max(
            i * self.stagger_ms + self._scaled(trace, trace.hops[-1].departure_ms)
            for i, trace in enumerate(self.traces)
        )

    # =========================================================================
    # Frames
    # =========================================================================

    def _scaled(self, trace: TracedRequest, timestamp_ms: float) -> float:
        return (timestamp_ms - trace.hops[0].arrival_ms) * self.time_scale

    def cursor_at(self, index: int, clock_ms: float) -> ReplayCursor:
        trace = self.traces[index]
        local = clock_ms - index * self.stagger_ms
        hops = trace.hops

        if local < 0:
            return ReplayCursor(trace.id, 0, ReplayPhase.WAITING, 0.0, hops[0].component_id, "waiting")

        for k, hop in enumerate(hops):
            arrival = self._scaled(trace, hop.arrival_ms)
            departure = self._scaled(trace, hop.departure_ms)
            if local < arrival:
                # Between the previous hop's departure and this arrival
                previous_departure = self._scaled(trace, hops[k - 1].departure_ms)
                span = arrival - previous_departure
                progress = (local - previous_departure) / span if span > 0 else 1.0
                return ReplayCursor(
                    trace.id, k - 1, ReplayPhase.TRAVELING, progress,
                    hops[k - 1].component_id, hops[k - 1].status.value,
                )
            if local < departure:
                progress = (local - arrival) / (departure - arrival)
                return ReplayCursor(
                    trace.id, k, ReplayPhase.PROCESSING, progress, hop.component_id, hop.status.value,
                )

        last = hops[-1]
        return ReplayCursor(
            trace.id, len(hops) - 1, ReplayPhase.DONE, 1.0, last.component_id, trace.status.value,
        )

    def frame_at(self, clock_ms: float) -> ReplayFrame:
        """Pure function of the clock: the frame shown at ``clock_ms``."""
        cursors = []
        active, cache_hits, errors = set(), set(), set()
        processed = 0
        for index, trace in enumerate(self.traces):
            cursor = self.cursor_at(index, clock_ms)
            cursors.append(cursor)
            if cursor.phase == ReplayPhase.PROCESSING:
                active.add(cursor.component_id)
            if cursor.phase == ReplayPhase.DONE:
                processed += 1
            if cursor.phase == ReplayPhase.WAITING:
                continue
            reached = trace.hops[: cursor.hop_index + 1]
            for hop in reached:
                if hop.status == HopStatus.CACHE_HIT:
                    cache_hits.add(hop.component_id)
                elif hop.status == HopStatus.ERROR:
                    errors.add(hop.component_id)

        return ReplayFrame(
            clock_ms=clock_ms,
            cursors=tuple(cursors),
            active_ids=frozenset(active),
            cache_hit_ids=frozenset(cache_hits),
            error_ids=frozenset(errors),
            requests_processed=processed,
            finished=processed == len(self.traces),
        )
