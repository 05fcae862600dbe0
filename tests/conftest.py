"""
Root pytest configuration and shared fixtures.

Provides a deterministic token counter (one token per whitespace-separated
word), a word-text factory and a scriptable inference provider so tests
never depend on tokenizer downloads or network access.
"""

import logging
from typing import Any, Callable, List, Optional, Union

import pytest

from repo_condenser.core.llm_provider import (
    InferenceOptions,
    InferenceProvider,
    InferenceResult,
)


def count_words(text: Optional[str]) -> int:
    """Fake token counter: one token per whitespace-separated word."""
    if not text:
        return 0
    return len(text.split())


def make_words(count: int, prefix: str = "w") -> str:
    """Build a structure-free text of ``count`` distinct words."""
    return " ".join(f"{prefix}{i}" for i in range(count))


Responder = Callable[[str, str, InferenceOptions], Union[InferenceResult, str]]


class ScriptedProvider(InferenceProvider):
    """Inference provider driven by a script of outcomes.

    ``script`` items are consumed one per call: an Exception instance is
    raised, a string or InferenceResult is returned. Once the script is
    exhausted, ``responder`` (or a fixed short summary) answers.

    Every call is recorded in ``calls`` as (system_prompt, user_prompt, options).
    """

    name = "scripted"

    def __init__(
        self,
        script: Optional[List[Any]] = None,
        responder: Optional[Responder] = None,
        input_tokens: int = 10,
        output_tokens: int = 2,
    ):
        self.script = list(script or [])
        self.responder = responder
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls: List[tuple] = []

    async def infer(self, system_prompt, user_prompt, options=None):
        self.calls.append((system_prompt, user_prompt, options))
        if self.script:
            outcome = self.script.pop(0)
        elif self.responder is not None:
            outcome = self.responder(system_prompt, user_prompt, options)
        else:
            outcome = "short summary"

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, InferenceResult):
            return outcome
        return InferenceResult(
            text=outcome,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )

    @property
    def user_prompts(self) -> List[str]:
        return [call[1] for call in self.calls]


@pytest.fixture
def word_counter():
    """Deterministic word-based token counter."""
    return count_words


@pytest.fixture
def words():
    """Factory for structure-free word texts."""
    return make_words


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def no_sleep():
    """Awaitable sleep that records requested delays instead of waiting."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep


@pytest.fixture
def reset_package_logger():
    """Restore the package logger after tests that configure logging."""
    logger = logging.getLogger("repo_condenser")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
