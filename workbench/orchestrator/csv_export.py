"""CSV exporter — serializes a conversation thread for download."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from workbench.models.message import (
    ChatThread,
    ConversationSnapshot,
    Role,
    SnapshotEntry,
    now_ms,
)

HEADER = (
    "indice",
    "ruolo",
    "messaggio",
    "data_ora_messaggio",
    "data_ora_inizio_conversazione",
    "data_ora_fine_conversazione",
    "data_ora_export_csv",
)
ROLE_LABELS = {Role.USER: "Utente", Role.ASSISTANT: "Assistente"}
EMPTY_MESSAGE = "Nessun messaggio disponibile"

BOM = "\ufeff"
ROW_SEPARATOR = "\r\n"
MEDIA_TYPE = "text/csv; charset=utf-8"
FILENAME_PREFIX = "chat_conversazione_"


def format_csv_datetime(ts: int) -> str:
    """Epoch milliseconds → ``YYYY-MM-DD HH:MM:SS`` in local time."""
    return datetime.fromtimestamp(ts / 1000).strftime("%Y-%m-%d %H:%M:%S")


class CsvExporter:
    """Builds export snapshots and renders them as CSV text."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock

    def snapshot(
        self, thread: ChatThread | None, exported_at: int | None = None
    ) -> ConversationSnapshot:
        """Copy the thread's answered messages, sorted by time and numbered."""
        if exported_at is None:
            exported_at = self._clock()

        messages = [m for m in (thread.messages if thread else []) if not m.pending]
        # sorted() is stable: equal timestamps keep conversation order
        messages = sorted(messages, key=lambda m: m.timestamp)

        entries = tuple(
            SnapshotEntry(index=i, role=m.role, text=m.text or "", timestamp=m.timestamp)
            for i, m in enumerate(messages, 1)
        )
        if not entries:
            return ConversationSnapshot(
                entries=(), started_at=exported_at, ended_at=exported_at, exported_at=exported_at
            )
        return ConversationSnapshot(
            entries=entries,
            started_at=entries[0].timestamp,
            ended_at=entries[-1].timestamp,
            exported_at=exported_at,
        )

    def generate(self, source: ChatThread | ConversationSnapshot) -> str:
        """Render a thread (or a snapshot taken earlier) as a CSV document."""
        snapshot = source if isinstance(source, ConversationSnapshot) else self.snapshot(source)

        started = format_csv_datetime(snapshot.started_at)
        ended = format_csv_datetime(snapshot.ended_at)
        exported = format_csv_datetime(snapshot.exported_at)

        rows: list[tuple[str, ...]] = [HEADER]
        for entry in snapshot.entries:
            rows.append((
                str(entry.index),
                ROLE_LABELS.get(entry.role, str(entry.role)),
                entry.text,
                format_csv_datetime(entry.timestamp),
                started,
                ended,
                exported,
            ))
        if not snapshot.entries:
            rows.append(("", "", EMPTY_MESSAGE, "", started, ended, exported))

        lines = [",".join(self._escape(field) for field in row) for row in rows]
        return BOM + ROW_SEPARATOR.join(lines)

    def filename(self, snapshot: ConversationSnapshot) -> str:
        stamp = datetime.fromtimestamp(snapshot.started_at / 1000).strftime("%Y%m%d_%H%M%S")
        return f"{FILENAME_PREFIX}{stamp}.csv"

    def _escape(self, value: str) -> str:
        """Quote a field, keeping every logical row on one physical line."""
        # CRLF first so it becomes a single escape
        text = value.replace("\r\n", "\\n").replace("\r", "\\n").replace("\n", "\\n")
        return '"' + text.replace('"', '""') + '"'
