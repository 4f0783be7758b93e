import threading
import unittest

from llm_contract.metrics import MetricsState, SharedMetrics, accumulate, build_metrics
from llm_contract.schemas import InferenceResponse, ResponseError, ResponseMetadata
from llm_contract.validation.validator import Validator


class TickingClock:
    def __init__(self) -> None:
        self.ticks = 0

    def now(self) -> float:
        self.ticks += 1
        return float(self.ticks)


def make_response(
    request_id: str, input_tokens: int, output_tokens: int, **kwargs: object
) -> InferenceResponse:
    return InferenceResponse(
        request_id=request_id,
        model_id="m-1",
        content="ok",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        **kwargs,
    )


class AccumulateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.a = make_response("a", 10, 5)
        self.b = make_response("b", 20, 7)
        self.c = make_response(
            "c", 30, 0, error=ResponseError(code="length", message="truncated")
        )

    def test_fold_order_does_not_change_aggregates(self) -> None:
        clock = TickingClock()

        forward = build_metrics([(self.a, 30), (self.b, 10), (self.c, 20)], clock=clock)
        rotated = build_metrics([(self.c, 20), (self.a, 30), (self.b, 10)], clock=clock)

        for field in (
            "total_requests",
            "total_input_tokens",
            "total_output_tokens",
            "min_latency",
            "max_latency",
            "average_latency",
            "error_count",
            "success_rate",
        ):
            with self.subTest(field=field):
                self.assertEqual(getattr(forward, field), getattr(rotated, field))

        self.assertEqual(forward.total_requests, 3)
        self.assertEqual(forward.total_input_tokens, 60)
        self.assertEqual(forward.min_latency, 10)
        self.assertEqual(forward.max_latency, 30)
        self.assertEqual(forward.timestamp, 3.0)
        self.assertEqual(rotated.timestamp, 6.0)

    def test_incremental_fold_matches_batch(self) -> None:
        clock = TickingClock()
        state = MetricsState()
        for response, latency in ((self.a, 12), (self.b, 8)):
            state = accumulate(state, response, latency, clock=clock)

        batch = build_metrics([(self.a, 12), (self.b, 8)], clock=TickingClock())

        self.assertEqual(state.to_metrics(), batch)

    def test_zero_requests_leave_success_rate_absent(self) -> None:
        metrics = MetricsState().to_metrics()

        self.assertEqual(metrics.total_requests, 0)
        self.assertIsNone(metrics.success_rate)
        self.assertIsNone(metrics.average_latency)
        self.assertIsNone(metrics.timestamp)

    def test_success_rate_counts_error_responses(self) -> None:
        metrics = build_metrics(
            [(self.a, 1), (self.b, 1), (self.c, 1), (make_response("d", 1, 1), 1)],
            clock=TickingClock(),
        )

        self.assertEqual(metrics.error_count, 1)
        self.assertEqual(metrics.success_rate, 0.75)

    def test_latency_and_cost_fall_back_to_response_metadata(self) -> None:
        priced = make_response("p", 1, 1, metadata=ResponseMetadata(latency=40, cost=0.02))
        unpriced = make_response("u", 1, 1)

        metrics = build_metrics([(priced, None), (unpriced, None)], clock=TickingClock())

        self.assertEqual(metrics.total_requests, 2)
        self.assertEqual(metrics.average_latency, 40)
        self.assertEqual(metrics.min_latency, 40)
        self.assertEqual(metrics.average_cost_per_request, 0.02)

    def test_average_stays_within_extremes_despite_float_rounding(self) -> None:
        metrics = build_metrics([(self.a, 0.1)] * 3, clock=TickingClock())

        self.assertLessEqual(metrics.min_latency, metrics.average_latency)
        self.assertLessEqual(metrics.average_latency, metrics.max_latency)

    def test_negative_latency_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            accumulate(MetricsState(), self.a, -1, clock=TickingClock())

    def test_built_metrics_pass_validation(self) -> None:
        metrics = build_metrics([(self.a, 30), (self.c, 20)], clock=TickingClock())

        result = Validator(clock=TickingClock()).validate_and_normalize(metrics)

        self.assertTrue(result.ok)


class SharedMetricsTests(unittest.TestCase):
    def test_concurrent_records_are_not_lost(self) -> None:
        shared = SharedMetrics(clock=TickingClock())
        response = make_response("a", 2, 3)

        def produce() -> None:
            for latency in range(50):
                shared.record(response, latency)

        threads = [threading.Thread(target=produce) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = shared.snapshot()
        self.assertEqual(snapshot.total_requests, 400)
        self.assertEqual(snapshot.total_input_tokens, 800)
        self.assertEqual(snapshot.total_output_tokens, 1200)
        self.assertEqual(snapshot.min_latency, 0)
        self.assertEqual(snapshot.max_latency, 49)
        self.assertEqual(snapshot.timestamp, 400.0)


if __name__ == "__main__":
    unittest.main()
