"""Shared fixtures for the workbench tests."""

from __future__ import annotations

import pytest

from workbench.backends.base import ChatAnswer, ChatBackendError
from workbench.orchestrator.editing import MessageEditController
from workbench.orchestrator.threads import ChatThreadStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Deterministic epoch-millisecond clock advancing one second per call."""

    def __init__(self, start: int = START_MS, step: int = 1000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


class FakeAssessmentBackend:
    def __init__(self, answer: str = "Risposta", error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[tuple[int, str, list]] = []

    async def ask(self, assessment_id, question, history):
        self.calls.append((assessment_id, question, history))
        if self.error:
            raise self.error
        return ChatAnswer(answer=self.answer)


class FakeDocumentBackend:
    def __init__(
        self,
        answer: str = "Risposta documenti",
        sources=None,
        error: Exception | None = None,
        default_prompt: str = "Prompt predefinito",
    ) -> None:
        self.answer = answer
        self.sources = sources or []
        self.error = error
        self.default_prompt = default_prompt
        self.calls: list[tuple[str, list, str | None]] = []
        self.prompt_fetches = 0

    async def ask(self, question, history, system_prompt=None):
        self.calls.append((question, history, system_prompt))
        if self.error:
            raise self.error
        return ChatAnswer(answer=self.answer, sources=list(self.sources))

    async def fetch_system_prompt(self):
        self.prompt_fetches += 1
        if self.default_prompt is None:
            raise ChatBackendError("offline")
        return self.default_prompt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ChatThreadStore(clock=clock)


@pytest.fixture
def editor(store, clock):
    return MessageEditController(store, clock=clock)
