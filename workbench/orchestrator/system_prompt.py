"""System prompt settings for the global document chat.

The user may override the backend's default prompt. Only a genuine
override is stored: an empty text, or one equal to the default, clears the
stored key instead.
"""

from __future__ import annotations

import logging
from enum import Enum

import aiosqlite

from workbench.backends.base import ChatBackendError, DocumentChat
from workbench.db.database import Database

logger = logging.getLogger(__name__)

STORAGE_KEY = "chatbotSystemPrompt"


class PromptStatus(Enum):
    SAVED = "saved"
    DEFAULT = "default"
    NOT_SAVED = "not_saved"


class SystemPromptSettings:
    """Default prompt (fetched once) plus the locally stored override."""

    def __init__(self, db: Database, backend: DocumentChat) -> None:
        self.db = db
        self.backend = backend
        self._default: str | None = None

    async def default_prompt(self) -> str:
        if self._default is None:
            try:
                self._default = await self.backend.fetch_system_prompt()
            except ChatBackendError as exc:
                logger.warning("Could not fetch default system prompt: %s", exc)
                return ""
        return self._default

    async def override(self) -> str | None:
        try:
            return await self.db.get_item(STORAGE_KEY)
        except (aiosqlite.Error, RuntimeError) as exc:
            logger.warning("System prompt override unavailable: %s", exc)
            return None

    async def save_override(self, text: str | None) -> PromptStatus:
        """Store ``text`` as the override, or clear it when redundant."""
        trimmed = (text or "").strip()
        default = (await self.default_prompt()).strip()
        try:
            if not trimmed or trimmed == default:
                await self.db.remove_item(STORAGE_KEY)
                return PromptStatus.DEFAULT
            await self.db.set_item(STORAGE_KEY, trimmed)
            return PromptStatus.SAVED
        except (aiosqlite.Error, RuntimeError) as exc:
            logger.warning("System prompt override not saved: %s", exc)
            return PromptStatus.NOT_SAVED
