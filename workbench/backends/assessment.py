"""Assessment chat backend — questions about one assessment's findings."""

from __future__ import annotations

import logging

import httpx

from workbench.backends.base import ChatAnswer, ChatBackendError, check_response
from workbench.config import settings

logger = logging.getLogger(__name__)


class AssessmentChatBackend:
    """POSTs a question plus history to ``/assessments/{id}/chat``."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.transport = transport

    async def ask(
        self, assessment_id: int, question: str, history: list[dict[str, str]]
    ) -> ChatAnswer:
        url = f"{self.base_url}/assessments/{assessment_id}/chat"
        logger.info("Assessment %s chat: sending question with %d history turns", assessment_id, len(history))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    url, json={"question": question, "history": history}
                )
        except httpx.HTTPError as exc:
            raise ChatBackendError(str(exc) or type(exc).__name__) from exc

        payload = check_response(response)
        return ChatAnswer(answer=str(payload.get("answer") or ""))
