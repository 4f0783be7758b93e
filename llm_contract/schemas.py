"""Pydantic schemas for the inference data model."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from .constants import ModelTypeValue, RoleValue, StopReasonValue, TokenizerTypeValue


class ContractModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting every field the caller never set."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class ModelConfig(ContractModel):
    model_config = ConfigDict(frozen=True)

    model_id: str = Field(alias="modelId")
    name: str
    version: str
    type: ModelTypeValue
    provider: str
    parameter_count: int = Field(alias="parameterCount")
    context_window: int = Field(alias="contextWindow")
    max_output_tokens: int = Field(alias="maxOutputTokens")
    supports_function_calling: bool = Field(alias="supportsFunctionCalling")
    supports_vision: bool = Field(alias="supportsVision")
    metadata: dict[str, JsonValue] | None = None


class GenerationConfig(ContractModel):
    temperature: float | None = None
    top_p: float | None = Field(default=None, alias="topP")
    top_k: int | None = Field(default=None, alias="topK")
    frequency_penalty: float | None = Field(default=None, alias="frequencyPenalty")
    presence_penalty: float | None = Field(default=None, alias="presencePenalty")
    max_tokens: int | None = Field(default=None, alias="maxTokens")
    num_completions: int | None = Field(default=None, alias="numCompletions")
    stop_sequences: list[str] | None = Field(default=None, alias="stopSequences")
    seed: int | None = None
    custom_parameters: dict[str, JsonValue] | None = Field(
        default=None, alias="customParameters"
    )


class SpecialTokens(ContractModel):
    model_config = ConfigDict(frozen=True)

    pad_token: int | None = Field(default=None, alias="padToken")
    unk_token: int | None = Field(default=None, alias="unkToken")
    bos_token: int | None = Field(default=None, alias="bosToken")
    eos_token: int | None = Field(default=None, alias="eosToken")
    custom: dict[str, int] | None = None

    def named(self) -> dict[str, int | None]:
        return {
            "pad_token": self.pad_token,
            "unk_token": self.unk_token,
            "bos_token": self.bos_token,
            "eos_token": self.eos_token,
        }


class TokenizerConfig(ContractModel):
    model_config = ConfigDict(frozen=True)

    tokenizer_id: str = Field(alias="tokenizerId")
    type: TokenizerTypeValue
    vocab_size: int = Field(alias="vocabSize")
    special_tokens: SpecialTokens = Field(
        default_factory=SpecialTokens, alias="specialTokens"
    )
    max_sequence_length: int | None = Field(default=None, alias="maxSequenceLength")
    lower_case: bool | None = Field(default=None, alias="lowerCase")
    metadata: dict[str, JsonValue] | None = None


class FunctionCall(ContractModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: dict[str, JsonValue] = Field(default_factory=dict)


class FunctionResult(ContractModel):
    model_config = ConfigDict(frozen=True)

    name: str
    result: JsonValue = None


class Message(ContractModel):
    model_config = ConfigDict(frozen=True)

    role: RoleValue
    content: str
    name: str | None = None
    timestamp: float | None = None
    function_calls: list[FunctionCall] | None = Field(default=None, alias="functionCalls")
    function_result: FunctionResult | None = Field(default=None, alias="functionResult")
    metadata: dict[str, JsonValue] | None = None


class ConversationContext(ContractModel):
    conversation_id: str = Field(alias="conversationId")
    messages: list[Message] = Field(default_factory=list)
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    model_snapshot: ModelConfig | None = Field(default=None, alias="modelConfig")
    generation_config: GenerationConfig | None = Field(default=None, alias="generationConfig")
    metadata: dict[str, JsonValue] | None = None
    created_at: float | None = Field(default=None, alias="createdAt")
    last_message_at: float | None = Field(default=None, alias="lastMessageAt")

    def role_sequence(self) -> list[str]:
        return [str(message.role) for message in self.messages]

    def latest_message_timestamp(self) -> float | None:
        for message in reversed(self.messages):
            if message.timestamp is not None:
                return message.timestamp
        return None


class RetryConfig(ContractModel):
    max_retries: int = Field(alias="maxRetries")
    retry_delay: float = Field(alias="retryDelay")


class InferenceRequest(ContractModel):
    request_id: str | None = Field(default=None, alias="requestId")
    prompt: str
    model_id: str = Field(alias="modelId")
    generation_config: GenerationConfig | None = Field(default=None, alias="generationConfig")
    conversation_context: ConversationContext | None = Field(
        default=None, alias="conversationContext"
    )
    messages: list[Message] | None = None
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    metadata: dict[str, JsonValue] | None = None
    timeout: float | None = None
    retry_config: RetryConfig | None = Field(default=None, alias="retryConfig")


class ResponseError(ContractModel):
    code: str
    message: str
    details: dict[str, JsonValue] | None = None


class ResponseMetadata(ContractModel):
    model_config = ConfigDict(extra="allow")

    latency: float | None = None
    cost: float | None = None


class InferenceResponse(ContractModel):
    request_id: str = Field(alias="requestId")
    model_id: str = Field(alias="modelId")
    content: str = ""
    alternatives: list[str] | None = None
    input_tokens: int | None = Field(default=None, alias="inputTokens")
    output_tokens: int | None = Field(default=None, alias="outputTokens")
    total_tokens: int | None = Field(default=None, alias="totalTokens")
    stop_reason: StopReasonValue | None = Field(default=None, alias="stopReason")
    filtered: bool | None = None
    metadata: ResponseMetadata | None = None
    timestamp: float | None = None
    error: ResponseError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ModelMetrics(ContractModel):
    total_requests: int = Field(default=0, alias="totalRequests")
    total_input_tokens: int = Field(default=0, alias="totalInputTokens")
    total_output_tokens: int = Field(default=0, alias="totalOutputTokens")
    average_latency: float | None = Field(default=None, alias="averageLatency")
    min_latency: float | None = Field(default=None, alias="minLatency")
    max_latency: float | None = Field(default=None, alias="maxLatency")
    error_count: int = Field(default=0, alias="errorCount")
    success_rate: float | None = Field(default=None, alias="successRate")
    average_cost_per_request: float | None = Field(
        default=None, alias="averageCostPerRequest"
    )
    timestamp: float | None = None
    custom_metrics: dict[str, JsonValue] | None = Field(default=None, alias="customMetrics")
