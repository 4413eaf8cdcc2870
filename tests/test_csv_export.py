"""Tests for the conversation CSV exporter."""

from __future__ import annotations

import csv
import io
from datetime import datetime

from workbench.models.message import ChatMessage, ChatThread, Role
from workbench.orchestrator.csv_export import (
    BOM,
    EMPTY_MESSAGE,
    HEADER,
    CsvExporter,
    format_csv_datetime,
)

from conftest import START_MS

EXPORT_MS = START_MS + 3_600_000


def _thread(*messages: ChatMessage) -> ChatThread:
    return ChatThread(key=1, messages=list(messages))


def _msg(role: Role, text: str, ts: int, pending: bool = False) -> ChatMessage:
    return ChatMessage(role=role, text=text, timestamp=ts, pending=pending)


def _rows(document: str) -> list[list[str]]:
    assert document.startswith(BOM)
    return list(csv.reader(io.StringIO(document[len(BOM):], newline="")))


def _local(ts: int) -> str:
    return datetime.fromtimestamp(ts / 1000).strftime("%Y-%m-%d %H:%M:%S")


class TestFormat:
    def test_datetime_format(self):
        assert format_csv_datetime(START_MS) == _local(START_MS)
        assert len(format_csv_datetime(0)) == len("YYYY-MM-DD HH:MM:SS")


class TestSnapshot:
    def test_excludes_pending_and_sorts(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        thread = _thread(
            _msg(Role.ASSISTANT, "ciao", START_MS + 5000),
            _msg(Role.USER, "prima", START_MS + 1000),
            _msg(Role.ASSISTANT, "in corso", START_MS + 6000, pending=True),
            _msg(Role.USER, "pari-a", START_MS + 3000),
            _msg(Role.ASSISTANT, "pari-b", START_MS + 3000),
        )
        snapshot = exporter.snapshot(thread)

        assert [e.text for e in snapshot.entries] == ["prima", "pari-a", "pari-b", "ciao"]
        assert [e.index for e in snapshot.entries] == [1, 2, 3, 4]
        assert snapshot.started_at == START_MS + 1000
        assert snapshot.ended_at == START_MS + 5000
        assert snapshot.exported_at == EXPORT_MS

    def test_does_not_mutate_thread(self):
        thread = _thread(_msg(Role.USER, "b", 2), _msg(Role.USER, "a", 1))
        CsvExporter().snapshot(thread)
        assert [m.text for m in thread.messages] == ["b", "a"]


class TestGenerate:
    def test_header_and_rows(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        thread = _thread(
            _msg(Role.ASSISTANT, "Ciao", START_MS),
            _msg(Role.USER, "Domanda", START_MS + 60_000),
        )
        rows = _rows(exporter.generate(thread))

        assert tuple(rows[0]) == HEADER
        assert rows[1] == [
            "1", "Assistente", "Ciao", _local(START_MS),
            _local(START_MS), _local(START_MS + 60_000), _local(EXPORT_MS),
        ]
        assert rows[2][:3] == ["2", "Utente", "Domanda"]
        assert len(rows) == 3

    def test_escaping(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        text = 'Il "riparo" manca\nriga due\r\nriga tre\rfine'
        document = exporter.generate(_thread(_msg(Role.USER, text, START_MS)))

        physical_lines = document[len(BOM):].split("\r\n")
        assert len(physical_lines) == 2
        assert '"Il ""riparo"" manca\\nriga due\\nriga tre\\nfine"' in physical_lines[1]
        assert all(line.startswith('"') and line.endswith('"') for line in physical_lines)

        rows = _rows(document)
        assert len(rows) == 2
        assert all(len(row) == len(HEADER) for row in rows)
        assert rows[1][2].replace("\\n", "\n") == text.replace("\r\n", "\n").replace("\r", "\n")

    def test_no_trailing_separator(self):
        document = CsvExporter(clock=lambda: EXPORT_MS).generate(_thread())
        assert not document.endswith("\r\n")

    def test_empty_thread(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        thread = _thread(_msg(Role.ASSISTANT, "...", START_MS, pending=True))
        rows = _rows(exporter.generate(thread))

        assert len(rows) == 2
        exported = _local(EXPORT_MS)
        assert rows[1] == ["", "", EMPTY_MESSAGE, "", exported, exported, exported]

    def test_generate_from_snapshot(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        thread = _thread(_msg(Role.USER, "uno", START_MS))
        snapshot = exporter.snapshot(thread)
        thread.messages.append(_msg(Role.USER, "dopo", START_MS + 1))
        rows = _rows(exporter.generate(snapshot))
        assert [r[2] for r in rows[1:]] == ["uno"]


class TestFilename:
    def test_uses_conversation_start(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        snapshot = exporter.snapshot(_thread(_msg(Role.USER, "x", START_MS)))
        stamp = datetime.fromtimestamp(START_MS / 1000).strftime("%Y%m%d_%H%M%S")
        assert exporter.filename(snapshot) == f"chat_conversazione_{stamp}.csv"

    def test_empty_uses_export_time(self):
        exporter = CsvExporter(clock=lambda: EXPORT_MS)
        snapshot = exporter.snapshot(None)
        stamp = datetime.fromtimestamp(EXPORT_MS / 1000).strftime("%Y%m%d_%H%M%S")
        assert exporter.filename(snapshot) == f"chat_conversazione_{stamp}.csv"
