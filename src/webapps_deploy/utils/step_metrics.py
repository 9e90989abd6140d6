"""Wall-clock timing of deployment steps.

Durations come from perf_counter_ns and end up in milliseconds on a
DeploymentReport, for failed runs as well as successful ones.
"""

from contextlib import contextmanager
from time import perf_counter_ns
from typing import Dict, Iterator, Optional

from webapps_deploy.core.models import DeploymentReport


class StepTimer:
    """Times the steps of one deployment run."""

    def __init__(self):
        self._started_ns = perf_counter_ns()
        self._durations_ns: Dict[str, int] = {}
        self._finished_ns: Optional[int] = None

    @contextmanager
    def measure(self, step: str) -> Iterator[None]:
        """Record how long the block takes, also when it raises."""
        start = perf_counter_ns()
        try:
            yield
        finally:
            self._durations_ns[step] = perf_counter_ns() - start

    def steps_ms(self) -> Dict[str, float]:
        return {step: ns / 1_000_000.0 for step, ns in self._durations_ns.items()}

    @property
    def total_ms(self) -> Optional[float]:
        if self._finished_ns is None:
            return None
        return (self._finished_ns - self._started_ns) / 1_000_000.0

    def fill(self, report: DeploymentReport) -> DeploymentReport:
        """Stop the clock and copy the timings onto the report."""
        if self._finished_ns is None:
            self._finished_ns = perf_counter_ns()
        report.steps_ms = self.steps_ms()
        report.total_ms = self.total_ms
        return report
