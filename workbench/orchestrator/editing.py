"""Message edit controller — one active edit per session.

Saving an edit rewrites a sent user message and marks every later message
in the same thread as stale. Answers are not regenerated; the user has to
ask again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from workbench.models.message import Role, ThreadKey, now_ms
from workbench.orchestrator.threads import ChatThreadStore

logger = logging.getLogger(__name__)

ESCAPE_KEY = "Escape"

SAVED_STATUS = "Messaggio modificato."
STALE_STATUS = (
    "Messaggio modificato. {count} messaggi successivi sono ora segnati come "
    "non aggiornati: invia di nuovo la domanda per ottenere una risposta aggiornata."
)


class EditRejected(ValueError):
    """Raised when an edit transition is not allowed."""


@dataclass(frozen=True)
class Editing:
    thread_key: ThreadKey
    message_id: str
    draft: str

    @property
    def can_save(self) -> bool:
        return bool(self.draft.strip())


class MessageEditController:
    """State machine: Idle (``state is None``) or ``Editing``."""

    def __init__(self, store: ChatThreadStore, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self._clock = clock
        self._state: Editing | None = None

    @property
    def state(self) -> Editing | None:
        return self._state

    @property
    def is_editing(self) -> bool:
        return self._state is not None

    @property
    def can_save(self) -> bool:
        return self._state is not None and self._state.can_save

    def begin_edit(self, key: ThreadKey, message_id: str) -> Editing:
        """Start editing a sent user message, abandoning any other edit."""
        self._state = None

        message = self.store.find(key, message_id)
        if message is None:
            raise EditRejected("Messaggio non trovato")
        if message.role is not Role.USER or message.pending:
            raise EditRejected("Solo i messaggi inviati dall'utente sono modificabili")

        self._state = Editing(thread_key=key, message_id=message_id, draft=message.text)
        return self._state

    def on_input(self, text: str) -> Editing:
        if self._state is None:
            raise EditRejected("Nessun messaggio in modifica")
        self._state = replace(self._state, draft=text or "")
        return self._state

    def cancel(self) -> None:
        self._state = None

    def handle_key(self, key_name: str) -> bool:
        """Cancel on Escape; return whether the key was consumed."""
        if key_name == ESCAPE_KEY and self._state is not None:
            self.cancel()
            return True
        return False

    def save(self) -> str:
        """Apply the draft, invalidate later messages and return a status line."""
        state = self._state
        if state is None:
            raise EditRejected("Nessun messaggio in modifica")
        if not state.can_save:
            raise EditRejected("Il messaggio non può essere vuoto")

        if self.store.find(state.thread_key, state.message_id) is None:
            self._state = None
            raise EditRejected("Messaggio non trovato")

        self.store.patch(
            state.thread_key,
            state.message_id,
            text=state.draft.strip(),
            timestamp=self._clock(),
            stale=False,
        )
        stale = self.store.mark_stale_after(state.thread_key, state.message_id)
        self._state = None

        logger.info(
            "Edited message %s in thread %r, %d later messages stale",
            state.message_id, state.thread_key, stale,
        )
        if stale == 0:
            return SAVED_STATUS
        return STALE_STATUS.format(count=stale)

    def clear(self, key: ThreadKey | None = None) -> None:
        """Drop the active edit (only if it targets ``key`` when given)."""
        if key is None or (self._state is not None and self._state.thread_key == key):
            self._state = None
