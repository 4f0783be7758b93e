"""Shared constants, bounds and open enumerations for the inference data model."""

from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator

TEMPERATURE_RANGE = (0.0, 2.0)
TOP_P_RANGE = (0.0, 1.0)
PENALTY_RANGE = (-2.0, 2.0)
MIN_TOP_K = 1
MIN_NUM_COMPLETIONS = 1

SUCCESS_RATE_TOLERANCE = 1e-9

TRANSPORT_ERROR_CODE = "transport_error"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ModelType(StrEnum):
    TRANSFORMER = "transformer"
    MOE = "moe"
    HYBRID = "hybrid"


class TokenizerType(StrEnum):
    BPE = "bpe"
    SENTENCEPIECE = "sentencepiece"
    WORDPIECE = "wordpiece"


class StopReason(StrEnum):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"


def _coerce_known(enum_cls: type[StrEnum]):
    def coerce(value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, enum_cls):
            try:
                return enum_cls(value)
            except ValueError:
                return value
        return value

    return coerce


def is_custom(value: str, enum_cls: type[StrEnum]) -> bool:
    """Return True when ``value`` is a provider-specific extension of ``enum_cls``."""
    return not isinstance(value, enum_cls)


# Known values validate to the enum member, anything else stays a plain str.
RoleValue = Annotated[Role | str, BeforeValidator(_coerce_known(Role))]
ModelTypeValue = Annotated[ModelType | str, BeforeValidator(_coerce_known(ModelType))]
TokenizerTypeValue = Annotated[
    TokenizerType | str, BeforeValidator(_coerce_known(TokenizerType))
]
StopReasonValue = Annotated[StopReason | str, BeforeValidator(_coerce_known(StopReason))]
