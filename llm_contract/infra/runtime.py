"""Injected runtime services: wall clock and request identifier generation."""

import logging
import time
import uuid
from functools import lru_cache
from typing import Protocol

from llm_contract.errors import DependencyFailure

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> float:
        """Return the current time in epoch milliseconds."""
        ...


class IdGenerator(Protocol):
    def new_id(self) -> str:
        """Return an identifier unique among outstanding requests."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.time() * 1000


class UuidGenerator:
    def new_id(self) -> str:
        return str(uuid.uuid4())


@lru_cache(maxsize=1)
def get_default_clock() -> Clock:
    return SystemClock()


@lru_cache(maxsize=1)
def get_default_id_generator() -> IdGenerator:
    return UuidGenerator()


def read_clock(clock: Clock) -> float:
    try:
        return clock.now()
    except Exception as e:
        logger.error("Clock failed", extra={"clock": type(clock).__name__}, exc_info=True)
        raise DependencyFailure("clock") from e


def generate_id(id_generator: IdGenerator) -> str:
    try:
        return id_generator.new_id()
    except Exception as e:
        logger.error(
            "Identifier generator failed",
            extra={"id_generator": type(id_generator).__name__},
            exc_info=True,
        )
        raise DependencyFailure("id_generator") from e
