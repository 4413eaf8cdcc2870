"""Finding parser — normalizes loosely-typed assessment findings.

Assessments deliver non-conformities and recommendations in several shapes:
a JSON array, a newline-delimited (possibly bulleted or numbered) list, a
single object, or an already-decoded list mixing strings and objects with
embedded citations. Everything is funnelled through ``parse`` and
``normalize_finding`` so that field-name guessing lives in one place.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Union

from workbench.models.finding import Finding
from workbench.models.source import PLACEHOLDER, Source

logger = logging.getLogger(__name__)

# A raw unit is either a plain string or a structured finding object.
RawFindingUnit = Union[str, Mapping[str, Any], Any]

# Ordered synonyms, first truthy value wins (for sources, first set value).
FINDING_TEXT_FIELDS = ("testo", "text", "descrizione", "messaggio")
FINDING_SOURCE_FIELDS = ("fonti", "sources", "fonte")
SOURCE_REFERENCE_FIELDS = (
    "riferimento",
    "reference",
    "citazione",
    "citation",
    "ref",
    "documentReference",
    "documento",
)
SOURCE_EXCERPT_FIELDS = ("chunk", "estratto", "excerpt", "testo", "text")
# First non-null value wins (0 is a valid confidence).
SOURCE_CONFIDENCE_FIELDS = ("confidence", "score", "similarity", "pertinenza")

BULLET_RE = re.compile(r"^[-*•]\s+")
NUMBERED_RE = re.compile(r"^\d+[.)]\s+")
LINE_BREAK_RE = re.compile(r"\r?\n")

ITEM_PLACEHOLDER = "Segnalazione {n}"
FINDING_QUESTION = "Puoi spiegarmi meglio questa segnalazione e come risolverla?"


def parse(raw: Any) -> list[RawFindingUnit]:
    """Split a raw findings payload into individual units."""
    if not raw and not isinstance(raw, Mapping):
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if not isinstance(raw, str):
        return [raw]

    text = raw.strip()
    if not text:
        return []

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    # Only a JSON array counts; objects and scalars fall through to the
    # line splitter on the original text.
    if isinstance(parsed, list):
        return parsed

    items: list[RawFindingUnit] = []
    for line in LINE_BREAK_RE.split(text):
        line = line.strip()
        if not line:
            continue
        line = BULLET_RE.sub("", line, count=1)
        line = NUMBERED_RE.sub("", line, count=1).strip()
        if line:
            items.append(line)
    return items


def _first_truthy(obj: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = obj.get(name)
        if value:
            return value
    return None


def _is_set(value: Any) -> bool:
    """Absent means None, False, empty string, zero or NaN; containers always count."""
    if value is None or isinstance(value, (bool, str)):
        return bool(value)
    if isinstance(value, (int, float)):
        return value == value and value != 0
    return True


def _first_set(obj: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = obj.get(name)
        if _is_set(value):
            return value
    return None


def _first_present(obj: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = obj.get(name)
        if value is not None:
            return value
    return None


def _as_confidence(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        logger.warning("Ignoring non-numeric source confidence: %r", value)
        return None


def normalize_source(raw: Any) -> Source:
    """Normalize one citation (object or bare reference) into a Source."""
    if not isinstance(raw, Mapping):
        return Source(reference=str(raw) if raw else PLACEHOLDER)

    reference = _first_truthy(raw, SOURCE_REFERENCE_FIELDS)
    excerpt = _first_truthy(raw, SOURCE_EXCERPT_FIELDS)
    return Source(
        reference=str(reference) if reference else PLACEHOLDER,
        excerpt=str(excerpt) if excerpt else PLACEHOLDER,
        confidence=_as_confidence(_first_present(raw, SOURCE_CONFIDENCE_FIELDS)),
    )


def normalize_finding(unit: RawFindingUnit) -> Finding:
    """Normalize a single raw unit into a Finding."""
    if isinstance(unit, str):
        return Finding(text=unit)

    if isinstance(unit, Mapping):
        raw_text = _first_truthy(unit, FINDING_TEXT_FIELDS)
        text = "" if raw_text is None else str(raw_text)

        raw_sources = _first_set(unit, FINDING_SOURCE_FIELDS)
        if raw_sources is None:
            raw_sources = []
        if not isinstance(raw_sources, (list, tuple)):
            raw_sources = [raw_sources]
        sources = [normalize_source(s) for s in raw_sources if _is_set(s)]
        return Finding(text=text, sources=sources)

    return Finding(text="" if unit is None else str(unit))


def normalize_findings(raw: Any) -> list[Finding]:
    """Parse and normalize a payload, filling blank texts with a placeholder."""
    findings: list[Finding] = []
    for n, unit in enumerate(parse(raw), 1):
        finding = normalize_finding(unit)
        if not finding.text.strip():
            finding.text = ITEM_PLACEHOLDER.format(n=n)
            finding.placeholder = True
        findings.append(finding)
    return findings


def build_question_for_finding(text: str) -> str:
    """Build the question used to ask the assistant about one finding."""
    text = (text or "").strip()
    if not text:
        return FINDING_QUESTION
    return f'{FINDING_QUESTION} "{text}"'
