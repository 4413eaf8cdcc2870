"""Suggestion builder — canned follow-up questions for an assessment chat."""

from __future__ import annotations

from collections.abc import Sequence

from workbench.models.finding import Finding, Suggestion
from workbench.orchestrator.findings import build_question_for_finding

MAX_SUGGESTIONS = 4

PRIORITIES = Suggestion(
    label="Priorità interventi",
    question="Quali sono le priorità di intervento e i rischi principali in base a questo assessment?",
)
ACTION_PLAN = Suggestion(
    label="Piano di azione",
    question=(
        "Puoi propormi un piano di azione step-by-step per risolvere "
        "le non conformità e applicare le raccomandazioni?"
    ),
)


def _explain(finding: Finding, label: str) -> Suggestion | None:
    if finding.placeholder or not finding.text.strip():
        return None
    return Suggestion(label=label, question=build_question_for_finding(finding.text))


def build_suggestions(
    findings: Sequence[Finding], recommendations: Sequence[Finding]
) -> list[Suggestion]:
    """Return at most four suggestions in display order.

    Order: explain the first finding, priorities (always), action plan when
    there are recommendations, explain the second finding.
    """
    suggestions: list[Suggestion] = []

    if findings:
        first = _explain(findings[0], "Spiega la principale non conformità")
        if first:
            suggestions.append(first)

    suggestions.append(PRIORITIES)

    if recommendations:
        suggestions.append(ACTION_PLAN)

    if len(findings) > 1:
        second = _explain(findings[1], "Spiega un'altra non conformità")
        if second:
            suggestions.append(second)

    return suggestions[:MAX_SUGGESTIONS]
