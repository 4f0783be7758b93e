"""Provider adapter boundary for executing inference requests."""

from typing import Protocol

from llm_contract.constants import TRANSPORT_ERROR_CODE
from llm_contract.schemas import InferenceRequest, InferenceResponse


class TransportFault(RuntimeError):
    """Raised by a transport when an exchange fails below the response level."""

    def __init__(self, message: str, code: str = TRANSPORT_ERROR_CODE) -> None:
        super().__init__(message)
        self.code = code


class InferenceTransport(Protocol):
    def invoke(self, request: InferenceRequest) -> InferenceResponse:
        """Execute a validated request against a provider."""
        ...
