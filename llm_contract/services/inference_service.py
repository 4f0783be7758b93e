"""Application service driving one inference exchange end to end."""

import logging
import threading
import time

from llm_contract.constants import TRANSPORT_ERROR_CODE
from llm_contract.errors import IssueKind, ValidationIssue
from llm_contract.metrics import SharedMetrics
from llm_contract.providers.base import InferenceTransport, TransportFault
from llm_contract.schemas import InferenceRequest, InferenceResponse, ResponseError
from llm_contract.validation.result import ValidationResult
from llm_contract.validation.validator import Validator

logger = logging.getLogger(__name__)


class InferenceService:
    def __init__(
        self,
        validator: Validator,
        transport: InferenceTransport,
        metrics: SharedMetrics | None = None,
    ) -> None:
        self._validator = validator
        self._transport = transport
        self._metrics = metrics
        self._outstanding: set[str] = set()
        self._lock = threading.Lock()

    def outstanding_request_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._outstanding)

    def execute(self, request: InferenceRequest) -> ValidationResult[InferenceResponse]:
        normalized = self._validator.validate_and_normalize(request)
        if not normalized.ok:
            return ValidationResult.failure(normalized.errors, normalized.warnings)

        request = normalized.value
        request_id = request.request_id
        with self._lock:
            if request_id in self._outstanding:
                duplicate = ValidationIssue(
                    kind=IssueKind.CORRELATION_ERROR,
                    field="request_id",
                    message=f"Request {request_id} is already outstanding",
                    value=request_id,
                )
                return ValidationResult.failure((duplicate,), normalized.warnings)
            self._outstanding.add(request_id)

        logger.info(
            "Inference request dispatched",
            extra={"request_id": request_id, "model": request.model_id},
        )
        try:
            start = time.time()
            try:
                response = self._transport.invoke(request)
            except Exception as e:
                logger.exception(
                    "Inference transport failed",
                    extra={"request_id": request_id, "model": request.model_id},
                )
                response = InferenceResponse(
                    request_id=request_id,
                    model_id=request.model_id,
                    error=ResponseError(
                        code=e.code if isinstance(e, TransportFault) else TRANSPORT_ERROR_CODE,
                        message=str(e) or type(e).__name__,
                    ),
                )
            latency_ms = (time.time() - start) * 1000

            # Only this call's id may answer it, even while other requests are in flight.
            result = self._validator.validate_and_normalize(
                response, outstanding_request_ids=frozenset({request_id})
            )
        finally:
            with self._lock:
                self._outstanding.discard(request_id)

        if result.ok and self._metrics is not None:
            self._metrics.record(result.value, latency_ms)

        logger.info(
            "Inference exchange completed",
            extra={
                "request_id": request_id,
                "model": request.model_id,
                "duration_ms": int(latency_ms),
                "failed": bool(result.value and result.value.failed),
                "validation_errors": len(result.errors),
            },
        )
        return result
