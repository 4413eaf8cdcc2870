"""Finding and suggestion data models."""

from __future__ import annotations

from dataclasses import dataclass, field

from workbench.models.source import Source


@dataclass
class Finding:
    """A single non-conformity or recommendation from an assessment."""

    text: str
    sources: list[Source] = field(default_factory=list)
    placeholder: bool = False


@dataclass(frozen=True)
class Suggestion:
    """A canned follow-up question offered above the chat composer."""

    label: str
    question: str
