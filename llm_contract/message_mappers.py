"""Conversion helpers between inference requests and provider-facing message formats."""

import json

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    ChatMessage,
    FunctionMessage,
    HumanMessage,
    SystemMessage,
)
from pydantic import JsonValue

from .constants import Role
from .schemas import InferenceRequest, Message


def resolve_history(request: InferenceRequest) -> list[Message]:
    """Return prior turns, with explicit ``messages`` overriding the conversation context."""
    if request.messages is not None:
        return list(request.messages)
    if request.conversation_context is not None:
        return list(request.conversation_context.messages)
    return []


def resolve_system_prompt(request: InferenceRequest) -> str | None:
    if request.system_prompt:
        return request.system_prompt
    if request.conversation_context is not None:
        return request.conversation_context.system_prompt or None
    return None


def _stringify(result: JsonValue) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result)


def to_langchain_message(message: Message) -> BaseMessage:
    extra = {"name": message.name} if message.name else {}

    if message.role == Role.SYSTEM:
        return SystemMessage(content=message.content, **extra)
    if message.role == Role.USER:
        return HumanMessage(content=message.content, **extra)
    if message.role == Role.ASSISTANT:
        tool_calls = [
            {"name": call.name, "args": dict(call.arguments), "id": None, "type": "tool_call"}
            for call in message.function_calls or ()
        ]
        return AIMessage(content=message.content, tool_calls=tool_calls, **extra)
    if message.function_result is not None:
        return FunctionMessage(
            name=message.function_result.name,
            content=_stringify(message.function_result.result),
        )
    return ChatMessage(role=str(message.role), content=message.content, **extra)


def build_langchain_messages(request: InferenceRequest) -> list[BaseMessage]:
    """Convert a request into LangChain messages: system prompt, history, then the prompt."""
    lc_messages: list[BaseMessage] = []

    system_prompt = resolve_system_prompt(request)
    if system_prompt:
        lc_messages.append(SystemMessage(content=system_prompt))

    lc_messages.extend(to_langchain_message(message) for message in resolve_history(request))

    if request.prompt.strip():
        lc_messages.append(HumanMessage(content=request.prompt))
    return lc_messages
