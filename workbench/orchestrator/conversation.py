"""Conversation service — the submit round trip and the restart flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from workbench.backends.base import (
    DEFAULT_ERROR,
    AssessmentChat,
    ChatAnswer,
    ChatBackendError,
    DocumentChat,
)
from workbench.config import settings
from workbench.models.message import GLOBAL_THREAD, ChatMessage, Role, ThreadKey
from workbench.orchestrator.csv_export import CsvExporter
from workbench.orchestrator.editing import MessageEditController
from workbench.orchestrator.system_prompt import SystemPromptSettings
from workbench.orchestrator.threads import ChatThreadStore, validate_key

logger = logging.getLogger(__name__)

PENDING_TEXT = "Sto elaborando…"
NO_ANSWER_TEXT = "Risposta non disponibile."
ERROR_PREFIX = "✗"
CSV_SAVED_STATUS = "CSV scaricato correttamente ({count} messaggi esportati)."
CSV_ERROR_STATUS = "Errore durante il download del CSV. Riprova."
RESTARTED_STATUS = "Nuova conversazione avviata."


class ThreadBusyError(RuntimeError):
    """A question is already awaiting an answer on this thread."""


@dataclass
class RestartResult:
    status: str
    csv: str | None = None
    filename: str | None = None
    exported: int = 0


class ConversationService:
    """Sends questions to the right backend and keeps threads in sync.

    At most one request is in flight per thread; different threads (an
    assessment chat and the global chat) may wait on answers concurrently.
    """

    def __init__(
        self,
        store: ChatThreadStore,
        editor: MessageEditController,
        assessment_backend: AssessmentChat,
        document_backend: DocumentChat,
        prompts: SystemPromptSettings | None = None,
        exporter: CsvExporter | None = None,
        history_window: int | None = None,
    ) -> None:
        self.store = store
        self.editor = editor
        self.assessment_backend = assessment_backend
        self.document_backend = document_backend
        self.prompts = prompts
        self.exporter = exporter or CsvExporter()
        self.history_window = history_window or settings.history_window
        self._busy: set[ThreadKey] = set()

    def is_busy(self, key: ThreadKey) -> bool:
        return key in self._busy

    async def submit(
        self, key: ThreadKey, question: str, display_name: str = ""
    ) -> ChatMessage | None:
        """Ask ``question`` on thread ``key`` and return the patched reply.

        Blank questions are ignored. Backend failures never propagate: the
        pending reply is turned into an error line and the thread stays usable.
        """
        key = validate_key(key)
        text = (question or "").strip()
        if not text:
            return None
        if key in self._busy:
            raise ThreadBusyError(f"Thread {key!r} is waiting for an answer")

        self.store.ensure(key, display_name)
        history = self.store.history(key, self.history_window)

        self.store.append(key, Role.USER, text)
        pending_id = self.store.append(key, Role.ASSISTANT, PENDING_TEXT, pending=True)

        self._busy.add(key)
        try:
            answer = await self._ask(key, text, history)
            self.store.patch(
                key,
                pending_id,
                pending=False,
                text=answer.answer.strip() or NO_ANSWER_TEXT,
                sources=list(answer.sources),
            )
        except ChatBackendError as exc:
            logger.warning("Chat on thread %r failed: %s", key, exc)
            self._fail(key, pending_id, str(exc))
        except Exception:
            logger.exception("Unexpected chat failure on thread %r", key)
            self._fail(key, pending_id, "")
        finally:
            self._busy.discard(key)

        return self.store.find(key, pending_id)

    async def _ask(
        self, key: ThreadKey, question: str, history: list[dict[str, str]]
    ) -> ChatAnswer:
        if key == GLOBAL_THREAD:
            system_prompt = await self.prompts.override() if self.prompts else None
            return await self.document_backend.ask(question, history, system_prompt)
        return await self.assessment_backend.ask(key, question, history)

    def _fail(self, key: ThreadKey, message_id: str, reason: str) -> None:
        self.store.patch(
            key,
            message_id,
            pending=False,
            text=f"{ERROR_PREFIX} {reason or DEFAULT_ERROR}",
        )

    def reset(self, key: ThreadKey) -> None:
        self.store.reset(key)
        self.editor.clear(key)

    def restart(self, save_csv: bool, key: ThreadKey = GLOBAL_THREAD) -> RestartResult:
        """Start a new conversation, optionally exporting the old one first."""
        snapshot = self.exporter.snapshot(self.store.get(key)) if save_csv else None
        self.reset(key)

        if snapshot is None:
            return RestartResult(status=RESTARTED_STATUS)

        try:
            csv = self.exporter.generate(snapshot)
            filename = self.exporter.filename(snapshot)
        except Exception:
            logger.exception("CSV export failed for thread %r", key)
            return RestartResult(status=CSV_ERROR_STATUS)

        return RestartResult(
            status=CSV_SAVED_STATUS.format(count=snapshot.count),
            csv=csv,
            filename=filename,
            exported=snapshot.count,
        )
