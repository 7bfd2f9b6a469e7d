"""
Latency tracking for the turn pipeline
Records per-stage durations for one turn and exports them to Prometheus
"""
import time
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Any, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
import statistics

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

stage_latency = Histogram(
    'turn_stage_duration_seconds',
    'Duration of turn pipeline stages',
    ['stage']
)
stage_failures = Counter(
    'turn_stage_failures_total',
    'Turn pipeline stage failures',
    ['stage']
)

# Stages slower than this are logged as warnings (milliseconds)
SLOW_STAGE_MS = 5000


@dataclass
class StageTimings:
    """Container for the durations of one stage across messages"""
    samples: List[float] = field(default_factory=list)

    def summary(self) -> Dict[str, float]:
        if not self.samples:
            return {"mean": 0.0, "median": 0.0, "min": 0.0, "max": 0.0, "total": 0.0, "count": 0}
        return {
            "mean": statistics.mean(self.samples),
            "median": statistics.median(self.samples),
            "min": min(self.samples),
            "max": max(self.samples),
            "total": sum(self.samples),
            "count": len(self.samples)
        }


class TurnLatencyTracker:
    """
    Tracks latency of each pipeline stage within a turn
    """

    def __init__(self, turn_id: str):
        """
        Initialize latency tracker

        Args:
            turn_id: Turn being measured
        """
        self.turn_id = turn_id
        self.started_at = time.time()
        self.stages: Dict[str, StageTimings] = {}
        self.failed_stage: Optional[str] = None

    @contextmanager
    def measure(self, stage: str, index: Optional[int] = None) -> Iterator[None]:
        """
        Time a stage; failures are counted against the stage and re-raised

        Args:
            stage: Stage name (transcription, composition, synthesis, ...)
            index: Message index for per-message stages
        """
        start = time.time()
        try:
            yield
        except Exception:
            self.failed_stage = stage
            stage_failures.labels(stage=stage).inc()
            raise
        finally:
            elapsed = time.time() - start
            self.record(stage, elapsed * 1000, index)

    def record(self, stage: str, elapsed_ms: float, index: Optional[int] = None):
        """
        Add a stage duration

        Args:
            stage: Stage name
            elapsed_ms: Duration in milliseconds
            index: Message index, used for logging only
        """
        self.stages.setdefault(stage, StageTimings()).samples.append(elapsed_ms)
        stage_latency.labels(stage=stage).observe(elapsed_ms / 1000)

        where = stage if index is None else f"{stage}[{index}]"
        if elapsed_ms > SLOW_STAGE_MS:
            logger.warning(f"High latency detected for {where} in turn {self.turn_id}: {elapsed_ms:.2f}ms")
        else:
            logger.debug(f"{where} done in {elapsed_ms:.0f}ms (turn {self.turn_id})")

    def total_ms(self) -> float:
        return (time.time() - self.started_at) * 1000

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get per-stage statistics for the turn

        Returns:
            Dictionary with stage summaries and totals
        """
        return {
            "turn_id": self.turn_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_ms": self.total_ms(),
            "failed_stage": self.failed_stage,
            "stages": {name: timings.summary() for name, timings in self.stages.items()}
        }
