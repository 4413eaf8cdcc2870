"""Source data model."""

from __future__ import annotations

from dataclasses import dataclass

PLACEHOLDER = "—"


@dataclass
class Source:
    """A normative citation backing a finding or a chat answer.

    ``confidence`` is kept on whatever scale the backend used (0–1 or 0–100);
    see ``workbench.orchestrator.confidence`` for interpretation.
    """

    reference: str = PLACEHOLDER
    excerpt: str = PLACEHOLDER
    confidence: float | None = None
