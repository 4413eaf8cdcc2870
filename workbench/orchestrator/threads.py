"""Chat thread store — keyed, in-memory registry of conversation threads."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import fields as dataclass_fields

from workbench.models.message import (
    GLOBAL_THREAD,
    ChatMessage,
    ChatThread,
    Role,
    ThreadKey,
    now_ms,
)
from workbench.models.source import Source

logger = logging.getLogger(__name__)

ASSESSMENT_GREETING = "\n".join([
    "Ciao! Sono qui per aiutarti a capire i difetti trovati e come risolverli.",
    "Fammi una domanda sulle non conformità o sulle raccomandazioni visibili in questa pagina.",
])
GLOBAL_GREETING = "\n".join([
    "Ciao! Posso rispondere a domande sui documenti caricati (normative e documentazione tecnica).",
    "Scrivi la tua domanda: ti indicherò anche le fonti utilizzate.",
])

DEFAULT_HISTORY_WINDOW = 10

_PATCHABLE = {f.name for f in dataclass_fields(ChatMessage)} - {"id"}


def validate_key(key: ThreadKey) -> ThreadKey:
    """Return ``key`` if it names a thread, else raise ValueError."""
    if key == GLOBAL_THREAD:
        return key
    if isinstance(key, int) and not isinstance(key, bool):
        return key
    raise ValueError(f"Invalid thread key: {key!r}")


class ChatThreadStore:
    """Owns every conversation thread for one application session.

    Threads are created lazily with a greeting, never observed empty, and
    fully independent of each other. Callers only get transient snapshots
    via ``snapshot``; ``ensure`` hands back the live thread for the UI layer
    to read during a single render.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._threads: dict[ThreadKey, ChatThread] = {}
        self._clock = clock

    def __contains__(self, key: ThreadKey) -> bool:
        return key in self._threads

    def ensure(self, key: ThreadKey, display_name: str = "") -> ChatThread:
        """Return the thread for ``key``, creating it with a greeting."""
        key = validate_key(key)
        thread = self._threads.get(key)
        if thread is not None:
            return thread

        greeting = GLOBAL_GREETING if key == GLOBAL_THREAD else ASSESSMENT_GREETING
        thread = ChatThread(
            key=key,
            display_name=display_name or "",
            messages=[ChatMessage(role=Role.ASSISTANT, text=greeting, timestamp=self._clock())],
        )
        self._threads[key] = thread
        logger.debug("Created chat thread %r", key)
        return thread

    def get(self, key: ThreadKey) -> ChatThread | None:
        return self._threads.get(key)

    def reset(self, key: ThreadKey) -> ChatThread:
        """Discard a thread and start over with a fresh greeting."""
        key = validate_key(key)
        previous = self._threads.pop(key, None)
        display_name = previous.display_name if previous else ""
        return self.ensure(key, display_name)

    def append(
        self,
        key: ThreadKey,
        role: Role | str,
        text: str,
        pending: bool = False,
        sources: list[Source] | None = None,
    ) -> str:
        """Append a new message and return its id for later patching."""
        thread = self.ensure(key)
        message = ChatMessage(
            role=Role(role),
            text=text,
            timestamp=self._clock(),
            pending=bool(pending),
            sources=list(sources or []),
        )
        thread.messages.append(message)
        return message.id

    def find(self, key: ThreadKey, message_id: str) -> ChatMessage | None:
        thread = self._threads.get(key)
        if thread is None:
            return None
        for message in thread.messages:
            if message.id == message_id:
                return message
        return None

    def patch(self, key: ThreadKey, message_id: str, **fields) -> None:
        """Merge ``fields`` into a message in place; missing targets are ignored."""
        message = self.find(key, message_id)
        if message is None:
            logger.debug("Patch skipped, no message %s in thread %r", message_id, key)
            return
        for name, value in fields.items():
            if name not in _PATCHABLE:
                logger.warning("Ignoring unknown message field %r", name)
                continue
            if name == "role":
                value = Role(value)
            setattr(message, name, value)

    def snapshot(self, key: ThreadKey) -> list[ChatMessage]:
        thread = self._threads.get(key)
        return list(thread.messages) if thread else []

    def history(
        self, key: ThreadKey, max_messages: int = DEFAULT_HISTORY_WINDOW
    ) -> list[dict[str, str]]:
        """Build the bounded conversation history sent to the backend."""
        thread = self._threads.get(key)
        if thread is None or max_messages <= 0:
            return []

        eligible = [
            m
            for m in thread.messages
            if not m.pending
            and m.role in (Role.USER, Role.ASSISTANT)
            and (m.text or "").strip()
        ]
        return [
            {"role": m.role.value, "content": m.text}
            for m in eligible[-max_messages:]
        ]

    def mark_stale_after(self, key: ThreadKey, message_id: str) -> int:
        """Flag every message after ``message_id`` as stale; return how many."""
        thread = self._threads.get(key)
        if thread is None:
            return 0
        for position, message in enumerate(thread.messages):
            if message.id == message_id:
                later = thread.messages[position + 1:]
                for m in later:
                    m.stale = True
                return len(later)
        return 0
