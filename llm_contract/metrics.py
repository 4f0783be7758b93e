"""Incremental metrics aggregation over completed inference exchanges.

Counts, token sums and latency min/max fold identically in any order. The
snapshot ``timestamp`` is the clock reading at the most recent fold.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace

from llm_contract.infra.runtime import Clock, get_default_clock, read_clock
from llm_contract.schemas import InferenceResponse, ModelMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsState:
    total_requests: int = 0
    error_count: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    latency_total: float = 0.0
    latency_count: int = 0
    min_latency: float | None = None
    max_latency: float | None = None
    cost_total: float = 0.0
    cost_count: int = 0
    last_folded_at: float | None = None

    def to_metrics(self) -> ModelMetrics:
        average_latency = None
        if self.latency_count:
            average_latency = self.latency_total / self.latency_count
            # Float summation can drift a hair outside the observed extremes.
            average_latency = min(max(average_latency, self.min_latency), self.max_latency)

        success_rate = None
        if self.total_requests:
            success_rate = (self.total_requests - self.error_count) / self.total_requests

        average_cost = None
        if self.cost_count:
            average_cost = self.cost_total / self.cost_count

        return ModelMetrics(
            total_requests=self.total_requests,
            total_input_tokens=self.total_input_tokens,
            total_output_tokens=self.total_output_tokens,
            average_latency=average_latency,
            min_latency=self.min_latency,
            max_latency=self.max_latency,
            error_count=self.error_count,
            success_rate=success_rate,
            average_cost_per_request=average_cost,
            timestamp=self.last_folded_at,
        )


def accumulate(
    current: MetricsState,
    response: InferenceResponse,
    latency_ms: float | None = None,
    *,
    clock: Clock | None = None,
) -> MetricsState:
    """Fold one completed exchange into ``current`` and return the new state.

    ``latency_ms`` falls back to ``response.metadata.latency``; an exchange with
    no latency at all still counts toward requests and tokens.
    """
    metadata = response.metadata
    if latency_ms is None and metadata is not None:
        latency_ms = metadata.latency
    if latency_ms is not None and latency_ms < 0:
        raise ValueError(f"latency_ms must be >= 0, got {latency_ms}")
    cost = metadata.cost if metadata is not None else None

    state = replace(
        current,
        total_requests=current.total_requests + 1,
        error_count=current.error_count + (1 if response.failed else 0),
        total_input_tokens=current.total_input_tokens + (response.input_tokens or 0),
        total_output_tokens=current.total_output_tokens + (response.output_tokens or 0),
        last_folded_at=read_clock(clock or get_default_clock()),
    )
    if latency_ms is not None:
        low = state.min_latency
        high = state.max_latency
        state = replace(
            state,
            latency_total=state.latency_total + latency_ms,
            latency_count=state.latency_count + 1,
            min_latency=latency_ms if low is None else min(low, latency_ms),
            max_latency=latency_ms if high is None else max(high, latency_ms),
        )
    if cost is not None:
        state = replace(state, cost_total=state.cost_total + cost, cost_count=state.cost_count + 1)
    return state


def build_metrics(
    exchanges: Iterable[tuple[InferenceResponse, float | None]],
    *,
    clock: Clock | None = None,
) -> ModelMetrics:
    state = MetricsState()
    for response, latency_ms in exchanges:
        state = accumulate(state, response, latency_ms, clock=clock)
    return state.to_metrics()


class SharedMetrics:
    """Metrics aggregate shared by concurrent producers.

    Each ``record`` call runs as one critical section so the running sums and
    min/max never reflect a partially applied fold.
    """

    def __init__(self, clock: Clock | None = None, initial: MetricsState | None = None) -> None:
        self._clock = clock or get_default_clock()
        self._state = initial or MetricsState()
        self._lock = threading.Lock()

    def record(self, response: InferenceResponse, latency_ms: float | None = None) -> None:
        with self._lock:
            self._state = accumulate(self._state, response, latency_ms, clock=self._clock)
            total_requests = self._state.total_requests
        logger.debug(
            "Exchange folded into metrics",
            extra={
                "request_id": response.request_id,
                "latency_ms": latency_ms,
                "total_requests": total_requests,
            },
        )

    @property
    def state(self) -> MetricsState:
        with self._lock:
            return self._state

    def snapshot(self) -> ModelMetrics:
        return self.state.to_metrics()
