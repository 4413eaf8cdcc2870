"""Document chat backend — questions over the whole uploaded corpus."""

from __future__ import annotations

import logging

import httpx

from workbench.backends.base import ChatAnswer, ChatBackendError, check_response
from workbench.config import settings
from workbench.orchestrator.findings import normalize_source

logger = logging.getLogger(__name__)


class DocumentChatBackend:
    """Client for ``/chatbot/chat`` and ``/chatbot/system-prompt``."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def ask(
        self,
        question: str,
        history: list[dict[str, str]],
        system_prompt: str | None = None,
    ) -> ChatAnswer:
        body: dict = {"question": question, "history": history}
        if system_prompt:
            body["systemPrompt"] = system_prompt
        logger.info(
            "Document chat: sending question with %d history turns (custom prompt: %s)",
            len(history), bool(system_prompt),
        )

        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/chatbot/chat", json=body)
        except httpx.HTTPError as exc:
            raise ChatBackendError(str(exc) or type(exc).__name__) from exc

        payload = check_response(response)
        raw_sources = payload.get("sources") or []
        if not isinstance(raw_sources, list):
            raw_sources = [raw_sources]
        return ChatAnswer(
            answer=str(payload.get("answer") or ""),
            sources=[normalize_source(s) for s in raw_sources if s],
        )

    async def fetch_system_prompt(self) -> str:
        """Return the backend's default system prompt."""
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/chatbot/system-prompt")
        except httpx.HTTPError as exc:
            raise ChatBackendError(str(exc) or type(exc).__name__) from exc

        payload = check_response(response)
        return str(payload.get("systemPrompt") or "")
