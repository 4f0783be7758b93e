"""Validation and normalization of inference entities before they cross a boundary.

Every public method returns a ``ValidationResult`` holding either a normalized
copy of its input or the full list of violations found. Inputs are never
mutated. Only failures of the injected clock or id generator raise
(``DependencyFailure``).
"""

import logging
import math
from collections.abc import Callable, Collection, Iterable, Iterator, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from llm_contract.constants import (
    MIN_NUM_COMPLETIONS,
    MIN_TOP_K,
    PENALTY_RANGE,
    SUCCESS_RATE_TOLERANCE,
    TEMPERATURE_RANGE,
    TOP_P_RANGE,
)
from llm_contract.errors import IssueKind, ValidationIssue
from llm_contract.infra.runtime import (
    Clock,
    IdGenerator,
    generate_id,
    get_default_clock,
    get_default_id_generator,
    read_clock,
)
from llm_contract.model_registry import ModelRegistry
from llm_contract.schemas import (
    ConversationContext,
    GenerationConfig,
    InferenceRequest,
    InferenceResponse,
    Message,
    ModelConfig,
    ModelMetrics,
    TokenizerConfig,
)
from llm_contract.validation.result import ValidationResult

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _range(
    field: str, value: float | None, bounds: tuple[float, float]
) -> Iterator[ValidationIssue]:
    low, high = bounds
    # NaN fails the chained comparison and is reported as out of range.
    if value is not None and not low <= value <= high:
        yield ValidationIssue(
            kind=IssueKind.RANGE_VIOLATION,
            field=field,
            message=f"{field} must be within [{low}, {high}], got {value}",
            value=value,
            bound=f"[{low}, {high}]",
        )


def _at_least(field: str, value: float | None, minimum: float) -> Iterator[ValidationIssue]:
    if value is not None and not value >= minimum:
        yield ValidationIssue(
            kind=IssueKind.RANGE_VIOLATION,
            field=field,
            message=f"{field} must be >= {minimum}, got {value}",
            value=value,
            bound=f">= {minimum}",
        )


def _positive(field: str, value: float | None) -> Iterator[ValidationIssue]:
    if value is not None and not value > 0:
        yield ValidationIssue(
            kind=IssueKind.RANGE_VIOLATION,
            field=field,
            message=f"{field} must be > 0, got {value}",
            value=value,
            bound="> 0",
        )


def _required_text(field: str, value: str | None) -> Iterator[ValidationIssue]:
    if value is None or not value.strip():
        yield ValidationIssue(
            kind=IssueKind.SHAPE_VIOLATION,
            field=field,
            message=f"{field} must be a non-empty string",
            value=value,
        )


def _prefixed(prefix: str, issues: Iterable[ValidationIssue]) -> list[ValidationIssue]:
    return [issue.with_prefix(prefix) for issue in issues]


def _is_prefix(shorter: list[str], longer: list[str]) -> bool:
    return longer[: len(shorter)] == shorter


class Validator:
    """Stateless validator; safe to share between threads."""

    def __init__(
        self,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        models: ModelRegistry | None = None,
    ) -> None:
        self._clock = clock or get_default_clock()
        self._id_generator = id_generator or get_default_id_generator()
        self._models = models
        self._handlers: Mapping[type, Callable[[Any], tuple[Any, list[ValidationIssue]]]] = {
            GenerationConfig: self._normalize_unchanged(self._generation_config_issues),
            ModelConfig: self._normalize_unchanged(self._model_config_issues),
            TokenizerConfig: self._normalize_unchanged(self._tokenizer_config_issues),
            Message: self._normalize_unchanged(self._message_issues),
            ConversationContext: self._normalize_unchanged(self._context_issues),
            ModelMetrics: self._normalize_unchanged(self._metrics_issues),
            InferenceRequest: self._normalize_request,
        }

    def validate_and_normalize(
        self,
        entity: BaseModel,
        *,
        outstanding_request_ids: Collection[str] | None = None,
    ) -> ValidationResult[Any]:
        if isinstance(entity, InferenceResponse):
            if outstanding_request_ids is None:
                raise ValueError("outstanding_request_ids is required to validate a response")
            value, issues = self._normalize_response(entity, outstanding_request_ids)
        else:
            handler = self._handlers.get(type(entity))
            if handler is None:
                raise TypeError(f"Unsupported entity type: {type(entity).__name__}")
            value, issues = handler(entity)
        return self._finish(type(entity).__name__, value, issues)

    def validate_payload(
        self,
        model_cls: type[ModelT],
        data: Mapping[str, Any],
        **kwargs: Any,
    ) -> ValidationResult[ModelT]:
        """Parse a raw mapping first, reporting structural errors as shape violations."""
        try:
            entity = model_cls.model_validate(data)
        except PydanticValidationError as e:
            issues = [
                ValidationIssue(
                    kind=IssueKind.SHAPE_VIOLATION,
                    field=".".join(str(part) for part in error["loc"]),
                    message=error["msg"],
                    value=error.get("input"),
                )
                for error in e.errors()
            ]
            return self._finish(model_cls.__name__, None, issues)
        return self.validate_and_normalize(entity, **kwargs)

    def append_message(
        self, context: ConversationContext, message: Message
    ) -> ValidationResult[ConversationContext]:
        """Append ``message`` to a copy of ``context``, advancing ``last_message_at``."""
        issues = _prefixed("message", self._message_issues(message))
        timestamp = message.timestamp
        if timestamp is not None:
            previous = context.latest_message_timestamp()
            if context.last_message_at is not None:
                previous = (
                    context.last_message_at
                    if previous is None
                    else max(previous, context.last_message_at)
                )
            if previous is not None and timestamp < previous:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field="message.timestamp",
                        message=(
                            "message timestamps must be non-decreasing: "
                            f"{timestamp} precedes {previous}"
                        ),
                        value=timestamp,
                        bound=f">= {previous}",
                    )
                )
            if context.created_at is not None and timestamp < context.created_at:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field="message.timestamp",
                        message=f"message timestamp {timestamp} precedes created_at",
                        value=timestamp,
                        bound=f">= {context.created_at}",
                    )
                )

        if any(not issue.kind.is_warning for issue in issues):
            return self._finish("ConversationContext", None, issues)

        if timestamp is None:
            timestamp = read_clock(self._clock)
            if context.last_message_at is not None:
                timestamp = max(timestamp, context.last_message_at)
        appended = context.model_copy(
            update={"messages": [*context.messages, message], "last_message_at": timestamp},
            deep=True,
        )
        return self._finish("ConversationContext", appended, issues)

    def _finish(
        self, entity_type: str, value: Any, issues: list[ValidationIssue]
    ) -> ValidationResult[Any]:
        errors = tuple(issue for issue in issues if not issue.kind.is_warning)
        warnings = tuple(issue for issue in issues if issue.kind.is_warning)
        for warning in warnings:
            logger.warning(
                "Validation warning",
                extra={
                    "entity_type": entity_type,
                    "issue_kind": warning.kind.value,
                    "field": warning.field,
                },
            )
        if errors:
            logger.info(
                "Validation rejected entity",
                extra={
                    "entity_type": entity_type,
                    "error_count": len(errors),
                    "fields": [error.field for error in errors],
                },
            )
            return ValidationResult.failure(errors, warnings)
        return ValidationResult.success(value, warnings)

    @staticmethod
    def _normalize_unchanged(
        collect: Callable[[Any], list[ValidationIssue]],
    ) -> Callable[[Any], tuple[Any, list[ValidationIssue]]]:
        def normalize(entity: BaseModel) -> tuple[Any, list[ValidationIssue]]:
            issues = collect(entity)
            return entity.model_copy(deep=True), issues

        return normalize

    def _generation_config_issues(self, config: GenerationConfig) -> list[ValidationIssue]:
        issues = [
            *_range("temperature", config.temperature, TEMPERATURE_RANGE),
            *_range("top_p", config.top_p, TOP_P_RANGE),
            *_range("frequency_penalty", config.frequency_penalty, PENALTY_RANGE),
            *_range("presence_penalty", config.presence_penalty, PENALTY_RANGE),
            *_at_least("top_k", config.top_k, MIN_TOP_K),
            *_positive("max_tokens", config.max_tokens),
            *_at_least("num_completions", config.num_completions, MIN_NUM_COMPLETIONS),
        ]
        for index, sequence in enumerate(config.stop_sequences or ()):
            if not sequence:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.SHAPE_VIOLATION,
                        field=f"stop_sequences.{index}",
                        message="stop sequences must be non-empty strings",
                        value=sequence,
                    )
                )
        return issues

    def _model_config_issues(self, config: ModelConfig) -> list[ValidationIssue]:
        issues = [
            *_required_text("model_id", config.model_id),
            *_at_least("parameter_count", config.parameter_count, 0),
            *_positive("context_window", config.context_window),
            *_positive("max_output_tokens", config.max_output_tokens),
        ]
        if config.max_output_tokens > config.context_window > 0:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.OUTPUT_LIMIT_WARNING,
                    field="max_output_tokens",
                    message=(
                        f"max_output_tokens {config.max_output_tokens} exceeds "
                        f"context_window {config.context_window}"
                    ),
                    value=config.max_output_tokens,
                    bound=f"<= {config.context_window}",
                )
            )
        return issues

    def _tokenizer_config_issues(self, config: TokenizerConfig) -> list[ValidationIssue]:
        issues = [
            *_required_text("tokenizer_id", config.tokenizer_id),
            *_positive("vocab_size", config.vocab_size),
            *_positive("max_sequence_length", config.max_sequence_length),
        ]
        if config.vocab_size <= 0:
            return issues

        token_ids = dict(config.special_tokens.named())
        for name, token_id in (config.special_tokens.custom or {}).items():
            token_ids[f"custom.{name}"] = token_id
        for name, token_id in token_ids.items():
            if token_id is not None and not 0 <= token_id < config.vocab_size:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field=f"special_tokens.{name}",
                        message=(
                            f"special token id {token_id} is outside the vocabulary "
                            f"[0, {config.vocab_size})"
                        ),
                        value=token_id,
                        bound=f"[0, {config.vocab_size})",
                    )
                )
        return issues

    def _message_issues(self, message: Message) -> list[ValidationIssue]:
        issues = [
            *_required_text("role", str(message.role)),
            *_at_least("timestamp", message.timestamp, 0),
        ]
        for index, call in enumerate(message.function_calls or ()):
            issues.extend(_required_text(f"function_calls.{index}.name", call.name))
        if message.function_result is not None:
            issues.extend(_required_text("function_result.name", message.function_result.name))
        if message.function_calls and message.function_result is not None:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.CONTRADICTORY_FUNCTION_PAYLOAD,
                    field="function_result",
                    message="message carries both function_calls and a function_result",
                )
            )
        return issues

    def _context_issues(self, context: ConversationContext) -> list[ValidationIssue]:
        issues = list(_required_text("conversation_id", context.conversation_id))
        if context.model_snapshot is not None:
            issues.extend(
                _prefixed("model_snapshot", self._model_config_issues(context.model_snapshot))
            )
        if context.generation_config is not None:
            issues.extend(
                _prefixed(
                    "generation_config",
                    self._generation_config_issues(context.generation_config),
                )
            )

        previous: float | None = None
        for index, message in enumerate(context.messages):
            issues.extend(_prefixed(f"messages.{index}", self._message_issues(message)))
            timestamp = message.timestamp
            if timestamp is None:
                continue
            if previous is not None and timestamp < previous:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field=f"messages.{index}.timestamp",
                        message=(
                            "message timestamps must be non-decreasing: "
                            f"{timestamp} precedes {previous}"
                        ),
                        value=timestamp,
                        bound=f">= {previous}",
                    )
                )
            if context.created_at is not None and timestamp < context.created_at:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field=f"messages.{index}.timestamp",
                        message=f"message timestamp {timestamp} precedes created_at",
                        value=timestamp,
                        bound=f">= {context.created_at}",
                    )
                )
            previous = timestamp if previous is None else max(previous, timestamp)

        if context.last_message_at is not None:
            if context.created_at is not None and context.created_at > context.last_message_at:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field="last_message_at",
                        message="last_message_at precedes created_at",
                        value=context.last_message_at,
                        bound=f">= {context.created_at}",
                    )
                )
            if previous is not None and context.last_message_at < previous:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field="last_message_at",
                        message="last_message_at precedes the latest message timestamp",
                        value=context.last_message_at,
                        bound=f">= {previous}",
                    )
                )
        return issues

    def _metrics_issues(self, metrics: ModelMetrics) -> list[ValidationIssue]:
        issues = [
            *_at_least("total_requests", metrics.total_requests, 0),
            *_at_least("total_input_tokens", metrics.total_input_tokens, 0),
            *_at_least("total_output_tokens", metrics.total_output_tokens, 0),
            *_at_least("error_count", metrics.error_count, 0),
            *_at_least("min_latency", metrics.min_latency, 0),
            *_range("success_rate", metrics.success_rate, (0.0, 1.0)),
        ]
        if metrics.error_count > metrics.total_requests:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.RANGE_VIOLATION,
                    field="error_count",
                    message="error_count exceeds total_requests",
                    value=metrics.error_count,
                    bound=f"<= {metrics.total_requests}",
                )
            )

        latencies = (metrics.min_latency, metrics.average_latency, metrics.max_latency)
        if None not in latencies and not latencies[0] <= latencies[1] <= latencies[2]:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.RANGE_VIOLATION,
                    field="average_latency",
                    message="latencies must satisfy min <= average <= max",
                    value=metrics.average_latency,
                    bound=f"[{metrics.min_latency}, {metrics.max_latency}]",
                )
            )

        if metrics.total_requests == 0:
            if metrics.success_rate is not None:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.SHAPE_VIOLATION,
                        field="success_rate",
                        message="success_rate is undefined when total_requests is 0",
                        value=metrics.success_rate,
                    )
                )
        elif metrics.success_rate is not None:
            expected = (metrics.total_requests - metrics.error_count) / metrics.total_requests
            if not math.isclose(metrics.success_rate, expected, abs_tol=SUCCESS_RATE_TOLERANCE):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.RANGE_VIOLATION,
                        field="success_rate",
                        message=f"success_rate must equal {expected}",
                        value=metrics.success_rate,
                        bound=str(expected),
                    )
                )
        return issues

    def _normalize_request(
        self, request: InferenceRequest
    ) -> tuple[InferenceRequest | None, list[ValidationIssue]]:
        issues = list(_required_text("model_id", request.model_id))
        if request.request_id is not None:
            issues.extend(_required_text("request_id", request.request_id))
        issues.extend(_positive("timeout", request.timeout))

        if request.generation_config is not None:
            issues.extend(
                _prefixed(
                    "generation_config",
                    self._generation_config_issues(request.generation_config),
                )
            )
        if request.conversation_context is not None:
            issues.extend(
                _prefixed(
                    "conversation_context",
                    self._context_issues(request.conversation_context),
                )
            )
        for index, message in enumerate(request.messages or ()):
            issues.extend(_prefixed(f"messages.{index}", self._message_issues(message)))

        if request.messages is not None and request.conversation_context is not None:
            explicit_roles = [str(message.role) for message in request.messages]
            context_roles = request.conversation_context.role_sequence()
            if not (
                _is_prefix(explicit_roles, context_roles)
                or _is_prefix(context_roles, explicit_roles)
            ):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.AMBIGUOUS_SOURCE,
                        field="messages",
                        message=(
                            "messages and conversation_context disagree on role sequence; "
                            "messages takes precedence"
                        ),
                    )
                )

        if self._models is not None and request.model_id:
            issues.extend(self._model_limit_issues(request))

        if any(not issue.kind.is_warning for issue in issues):
            return None, issues
        normalized = request.model_copy(deep=True)
        if request.request_id is None:
            normalized = normalized.model_copy(
                update={"request_id": generate_id(self._id_generator)}
            )
        return normalized, issues

    def _model_limit_issues(self, request: InferenceRequest) -> list[ValidationIssue]:
        model = self._models.get(request.model_id)
        if model is None:
            return [
                ValidationIssue(
                    kind=IssueKind.SHAPE_VIOLATION,
                    field="model_id",
                    message=f"Unknown model: {request.model_id}",
                    value=request.model_id,
                )
            ]
        max_tokens = request.generation_config.max_tokens if request.generation_config else None
        if max_tokens is not None and max_tokens > model.max_output_tokens:
            return [
                ValidationIssue(
                    kind=IssueKind.RANGE_VIOLATION,
                    field="generation_config.max_tokens",
                    message=(
                        f"max_tokens {max_tokens} exceeds max_output_tokens "
                        f"{model.max_output_tokens} of model {model.model_id}"
                    ),
                    value=max_tokens,
                    bound=f"<= {model.max_output_tokens}",
                )
            ]
        return []

    def _normalize_response(
        self, response: InferenceResponse, outstanding_request_ids: Collection[str]
    ) -> tuple[InferenceResponse | None, list[ValidationIssue]]:
        issues = [
            *_required_text("request_id", response.request_id),
            *_required_text("model_id", response.model_id),
            *_at_least("input_tokens", response.input_tokens, 0),
            *_at_least("output_tokens", response.output_tokens, 0),
            *_at_least("total_tokens", response.total_tokens, 0),
        ]
        if response.error is not None:
            issues.extend(_required_text("error.code", response.error.code))
            issues.extend(_required_text("error.message", response.error.message))
        if response.metadata is not None:
            issues.extend(_at_least("metadata.latency", response.metadata.latency, 0))
            issues.extend(_at_least("metadata.cost", response.metadata.cost, 0))

        if response.request_id and response.request_id not in outstanding_request_ids:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.CORRELATION_ERROR,
                    field="request_id",
                    message=f"No outstanding request with id {response.request_id}",
                    value=response.request_id,
                )
            )

        updates: dict[str, Any] = {}
        if response.input_tokens is not None and response.output_tokens is not None:
            expected_total = response.input_tokens + response.output_tokens
            if response.total_tokens is None:
                updates["total_tokens"] = expected_total
            elif response.total_tokens != expected_total:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.TOKEN_ACCOUNTING_ERROR,
                        field="total_tokens",
                        message=(
                            f"total_tokens {response.total_tokens} != input_tokens "
                            f"{response.input_tokens} + output_tokens {response.output_tokens}"
                        ),
                        value=response.total_tokens,
                        bound=f"== {expected_total}",
                    )
                )

        if any(not issue.kind.is_warning for issue in issues):
            return None, issues
        if response.timestamp is None:
            updates["timestamp"] = read_clock(self._clock)
        normalized = response.model_copy(deep=True)
        if updates:
            normalized = normalized.model_copy(update=updates)
        return normalized, issues
