"""Base protocol and helpers shared by the chat backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from workbench.models.source import Source

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Errore durante la chat"


class ChatBackendError(RuntimeError):
    """The answering service failed or refused the question."""


@dataclass
class ChatAnswer:
    """Answer returned by a chat backend."""

    answer: str
    sources: list[Source] = field(default_factory=list)


@runtime_checkable
class AssessmentChat(Protocol):
    """Answers questions scoped to a single assessment."""

    async def ask(
        self, assessment_id: int, question: str, history: list[dict[str, str]]
    ) -> ChatAnswer:
        ...


@runtime_checkable
class DocumentChat(Protocol):
    """Answers questions over the whole document corpus."""

    async def ask(
        self,
        question: str,
        history: list[dict[str, str]],
        system_prompt: str | None = None,
    ) -> ChatAnswer:
        ...

    async def fetch_system_prompt(self) -> str:
        ...


def read_payload(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, treating anything else as empty."""
    try:
        payload = response.json()
    except ValueError:
        logger.warning("Non-JSON response from %s (HTTP %d)", response.url, response.status_code)
        return {}
    return payload if isinstance(payload, dict) else {}


def check_response(response: httpx.Response) -> dict[str, Any]:
    """Return the payload of a successful response or raise ChatBackendError."""
    payload = read_payload(response)
    if not response.is_success:
        message = payload.get("error") or DEFAULT_ERROR
        raise ChatBackendError(str(message))
    return payload
