"""
Run statistics, step attempt spans and structured run events
"""
import logging
import time
from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from .models.execution import Disposition, TransitionOutcome


@dataclass
class NodeStats:
    """What happened at one node across every run of a workflow"""
    attempts: int = 0
    retries: int = 0
    catches: int = 0
    timeouts: int = 0
    fatal: int = 0
    durations: List[float] = field(default_factory=list)

    @property
    def mean_duration(self):
        if not self.durations:
            return None
        return sum(self.durations) / len(self.durations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "retries": self.retries,
            "catches": self.catches,
            "timeouts": self.timeouts,
            "fatal": self.fatal,
            "mean_duration": self.mean_duration
        }


class RunMetrics:
    """In-process statistics fed by the engine.

    Runs are counted per workflow and disposition; attempts and their
    outcomes per (workflow, node). Nothing is exported, ``summary`` is what
    ``/health`` reports.
    """

    _OUTCOME_FIELDS = {
        TransitionOutcome.RETRY_SCHEDULED: "retries",
        TransitionOutcome.CAUGHT: "catches",
        TransitionOutcome.TIMED_OUT: "timeouts",
        TransitionOutcome.FATAL: "fatal",
    }

    def __init__(self):
        self.runs: Dict[str, Counter] = defaultdict(Counter)
        self.run_durations: Dict[str, List[float]] = defaultdict(list)
        self.nodes: Dict[Tuple[str, str], NodeStats] = defaultdict(NodeStats)

    def record_run(self, workflow: str, disposition: Disposition, duration: float):
        self.runs[workflow][disposition.value] += 1
        self.run_durations[workflow].append(duration)

    def record_attempt(self, workflow: str, node: str, duration: float):
        stats = self.nodes[(workflow, node)]
        stats.attempts += 1
        stats.durations.append(duration)

    def record_transition(self, workflow: str, node: str, outcome: TransitionOutcome):
        name = self._OUTCOME_FIELDS.get(outcome)
        if name is not None:
            stats = self.nodes[(workflow, node)]
            setattr(stats, name, getattr(stats, name) + 1)

    def runs_for(self, workflow: str) -> Dict[str, int]:
        return {d.value: self.runs[workflow][d.value] for d in Disposition}

    def node_stats(self, workflow: str, node: str) -> NodeStats:
        return self.nodes.get((workflow, node)) or NodeStats()

    def summary(self) -> Dict[str, Any]:
        workflows: Dict[str, Any] = {}
        for name in sorted(set(self.runs) | {wf for wf, _ in self.nodes}):
            durations = self.run_durations.get(name, [])
            workflows[name] = {
                "runs": self.runs_for(name),
                "mean_duration": sum(durations) / len(durations) if durations else None,
                "nodes": {
                    node: stats.to_dict()
                    for (wf, node), stats in sorted(self.nodes.items())
                    if wf == name
                }
            }
        return workflows


class StepTracer:
    """Times step attempts and logs each one on ``stepflow.tracing``"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.logger = logging.getLogger("stepflow.tracing")
        self._clock = clock

    @contextmanager
    def span(self, name: str, **attrs: Any):
        started = self._clock()
        self.logger.debug(f"{name} started", extra={"span": name, **attrs})
        try:
            yield
        finally:
            elapsed = self._clock() - started
            self.logger.debug(
                f"{name} finished after {elapsed:.3f}s",
                extra={"span": name, "elapsed": elapsed, **attrs}
            )


class RunEventLog:
    """Run lifecycle events on ``stepflow.events``, fields under ``event_data``"""

    def __init__(self):
        self.logger = logging.getLogger("stepflow.events")

    def log(self, event: str, level: int = logging.INFO, **fields: Any):
        self.logger.log(level, event, extra={"event_data": fields})
