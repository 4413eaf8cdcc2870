"""Chat message, thread and export snapshot data models."""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from workbench.models.source import Source

GLOBAL_THREAD = "global"

# An assessment id, or GLOBAL_THREAD for the document-corpus chat.
ThreadKey = Union[int, str]


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_message_id() -> str:
    """Return a URL-safe, collision-resistant message id."""
    try:
        return uuid.uuid4().hex
    except NotImplementedError:
        # No OS randomness source available
        return f"m_{now_ms()}_{random.getrandbits(64):x}"


@dataclass
class ChatMessage:
    """One turn of a conversation thread."""

    role: Role
    text: str
    timestamp: int = field(default_factory=now_ms)
    pending: bool = False
    sources: list[Source] = field(default_factory=list)
    stale: bool = False
    id: str = field(default_factory=new_message_id)


@dataclass
class ChatThread:
    """An ordered conversation log owned by the thread store."""

    key: ThreadKey
    display_name: str = ""
    messages: list[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class SnapshotEntry:
    index: int
    role: Role
    text: str
    timestamp: int


@dataclass(frozen=True)
class ConversationSnapshot:
    """Read-only, timestamp-sorted copy of a thread taken at export time."""

    entries: tuple[SnapshotEntry, ...]
    started_at: int
    ended_at: int
    exported_at: int

    @property
    def count(self) -> int:
        return len(self.entries)
