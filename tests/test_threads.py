"""Tests for the chat thread store and history window."""

from __future__ import annotations

import re

import pytest

from workbench.models.message import GLOBAL_THREAD, Role, new_message_id
from workbench.models.source import Source
from workbench.orchestrator.threads import (
    ASSESSMENT_GREETING,
    GLOBAL_GREETING,
    ChatThreadStore,
)


def _fill(store: ChatThreadStore, key, pairs: int) -> None:
    for i in range(1, pairs + 1):
        store.append(key, Role.USER, f"domanda {i}")
        store.append(key, Role.ASSISTANT, f"risposta {i}")


class TestEnsure:
    def test_creates_greeting(self, store):
        thread = store.ensure(7, "Pressa idraulica")
        assert thread.display_name == "Pressa idraulica"
        assert len(thread.messages) == 1
        assert thread.messages[0].role is Role.ASSISTANT
        assert thread.messages[0].text == ASSESSMENT_GREETING

    def test_global_greeting(self, store):
        assert store.ensure(GLOBAL_THREAD).messages[0].text == GLOBAL_GREETING

    def test_idempotent(self, store):
        first = store.ensure(7)
        second = store.ensure(7, "altro nome")
        assert second is first
        assert len(second.messages) == 1
        assert second.messages[0].id == first.messages[0].id

    @pytest.mark.parametrize("key", ["7", None, 1.5, True, "globale"])
    def test_invalid_keys(self, store, key):
        with pytest.raises(ValueError):
            store.ensure(key)


class TestReset:
    def test_reset_leaves_fresh_greeting(self, store):
        store.ensure(3, "Tornio")
        greeting_id = store.ensure(3).messages[0].id
        _fill(store, 3, 2)

        store.reset(3)
        thread = store.ensure(3)
        assert len(thread.messages) == 1
        assert thread.messages[0].id != greeting_id
        assert thread.display_name == "Tornio"

    def test_reset_unknown_thread(self, store):
        thread = store.reset(GLOBAL_THREAD)
        assert len(thread.messages) == 1


class TestAppendAndPatch:
    def test_append_returns_id(self, store):
        message_id = store.append(1, Role.USER, "ciao")
        message = store.find(1, message_id)
        assert message.text == "ciao"
        assert message.pending is False
        assert message.stale is False

    def test_append_pending(self, store):
        message_id = store.append(1, "assistant", "...", pending=True)
        assert store.find(1, message_id).pending is True

    def test_patch_in_place(self, store):
        message_id = store.append(1, Role.ASSISTANT, "...", pending=True)
        sources = [Source(reference="Art. 5")]
        store.patch(1, message_id, pending=False, text="fatto", sources=sources)
        message = store.find(1, message_id)
        assert (message.pending, message.text) == (False, "fatto")
        assert message.sources == sources

    def test_patch_missing_is_noop(self, store):
        store.patch(99, "nope", text="x")
        store.ensure(1)
        store.patch(1, "nope", text="x")
        assert 99 not in store
        assert store.ensure(1).messages[0].text == ASSESSMENT_GREETING

    def test_patch_cannot_change_id(self, store):
        message_id = store.append(1, Role.USER, "x")
        store.patch(1, message_id, id="other")
        assert store.find(1, message_id) is not None

    def test_threads_are_independent(self, store):
        store.append(1, Role.USER, "solo uno")
        store.append(GLOBAL_THREAD, Role.USER, "solo globale")
        assert [m["content"] for m in store.history(1)][-1] == "solo uno"
        assert "solo uno" not in [m["content"] for m in store.history(GLOBAL_THREAD)]
        assert len(store.snapshot(2)) == 0


class TestHistory:
    def test_window_keeps_most_recent(self, store):
        _fill(store, 5, 15)
        history = store.history(5, 10)
        assert len(history) == 10
        assert history[0] == {"role": "user", "content": "domanda 11"}
        assert history[-1] == {"role": "assistant", "content": "risposta 15"}

    def test_excludes_pending_and_blank(self, store):
        store.ensure(5)
        store.append(5, Role.USER, "   ")
        store.append(5, Role.ASSISTANT, "attendere", pending=True)
        _fill(store, 5, 6)
        store.append(5, Role.ASSISTANT, "in corso", pending=True)

        history = store.history(5, 10)
        contents = [h["content"] for h in history]
        assert len(history) == 10
        assert "attendere" not in contents
        assert "in corso" not in contents
        assert "   " not in contents

    def test_includes_greeting_when_short(self, store):
        store.ensure(5)
        history = store.history(5)
        assert history == [{"role": "assistant", "content": ASSESSMENT_GREETING}]

    def test_unknown_thread(self, store):
        assert store.history(404) == []

    def test_does_not_mutate(self, store):
        _fill(store, 5, 3)
        before = list(store.snapshot(5))
        store.history(5, 2)
        assert store.snapshot(5) == before


class TestMessageId:
    def test_url_safe_and_unique(self):
        ids = {new_message_id() for _ in range(200)}
        assert len(ids) == 200
        assert all(re.fullmatch(r"[A-Za-z0-9_]+", i) for i in ids)

    def test_fallback_without_randomness(self, monkeypatch):
        def no_uuid():
            raise NotImplementedError

        monkeypatch.setattr("workbench.models.message.uuid.uuid4", no_uuid)
        message_id = new_message_id()
        assert re.fullmatch(r"m_\d+_[0-9a-f]+", message_id)
