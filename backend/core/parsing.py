"""Turn free-text AI answers into structured fields.

Everything in here is pure: text in, plain data out. The structured path
(a JSON object somewhere in the answer) is tried first; labelled-section
pattern matching is the fallback for answers that ignored the JSON request.
Results are best-effort and any field may come back empty.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from backend.core.schema import SyllabusEntities

# ----------------------------------------------------------------------
# readiness heuristics
# ----------------------------------------------------------------------
INCOMPLETE_SIGNATURES: tuple[str, ...] = (
    "Error: Could not fetch data from S3",
    "Files are still being processed",
    "Please try again later",
)
PLACEHOLDER_RESPONSES: tuple[str, ...] = ("Chat endpoint response retrieved",)
UNUSABLE_MARKERS: tuple[str, ...] = ("No content available", "Unable to process")
MIN_CONTENT_LENGTH = 20

_BARE_FAILURE_RE = re.compile(r"^(?:error|failed|null|undefined|none)$", re.IGNORECASE)


def is_incomplete_response(content: str | None) -> bool:
    """True when the answer looks like Amplify has not finished indexing."""

    if content is None:
        return True
    text = content.strip()
    if not text:
        return True
    if text in PLACEHOLDER_RESPONSES:
        return True
    return any(signature in text for signature in INCOMPLETE_SIGNATURES)


def has_usable_content(content: Any) -> bool:
    if not isinstance(content, str):
        return False
    text = content.strip()
    if len(text) <= MIN_CONTENT_LENGTH or is_incomplete_response(text):
        return False
    if any(marker in text for marker in UNUSABLE_MARKERS):
        return False
    return _BARE_FAILURE_RE.match(text) is None


# ----------------------------------------------------------------------
# JSON extraction
# ----------------------------------------------------------------------
_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json_payload(text: str | None) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, or ``None``."""

    if not text:
        return None
    match = _CODE_BLOCK_RE.search(text)
    candidate = (match.group(1) if match else text).strip()

    attempts = [candidate]
    start = candidate.find("{")
    end = candidate.rfind("}") + 1
    if start != -1 and end > start:
        attempts.append(candidate[start:end])

    for attempt in attempts:
        try:
            data = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


# ----------------------------------------------------------------------
# section matching
# ----------------------------------------------------------------------
# Ordered: the first alias that matches a label wins.
FIELD_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("learning_objectives", ("learning objective", "learning outcome", "objective")),
    ("course_materials", ("course material", "required material", "material", "textbook")),
    ("office_hours", ("office hour",)),
    ("course_code_name", ("course code", "course title", "course name", "code and name")),
    ("course_description", ("description",)),
    ("course_format", ("format",)),
    ("term", ("term", "semester")),
    ("difficulty_level", ("difficulty",)),
    ("topics", ("topic", "concept")),
    ("insights", ("insight", "recommendation", "finding")),
    ("summary", ("summary", "overview")),
    ("integration", ("integration", "suggestion")),
)
# An alias has to start within the first few words of a label.
_MAX_LEADING_WORDS = 2
_MAX_LABEL_WORDS = 8

_HEADER_RE = re.compile(
    r"^\s*(?P<marker>#{1,6}\s*|\d{1,2}[.)]\s*)?(?P<bold>\*\*|__)?\s*"
    r"(?P<label>[A-Za-z][^:\n*_]{0,80}?)\s*(?:\*\*|__)?\s*"
    r"(?:(?P<colon>:)(?:\*\*|__)?\s*(?P<rest>.*))?$"
)
_BULLET_RE = re.compile(r"^\s*(?:[-*•▪●]|\d{1,2}[.)]|[a-z][.)])\s+")


def classify_label(label: str) -> str | None:
    """Map a section label such as ``"Key Topics"`` to a field name."""

    lowered = " ".join(re.sub(r"[^a-z0-9 ]+", " ", label.lower()).split())
    if not lowered:
        return None
    for field_name, aliases in FIELD_ALIASES:
        for alias in aliases:
            match = re.search(rf"\b{re.escape(alias)}", lowered)
            if match and len(lowered[: match.start()].split()) <= _MAX_LEADING_WORDS:
                return field_name
    return None


def _match_header(line: str) -> tuple[str, str] | None:
    if _BULLET_RE.match(line) and not re.match(r"^\s*\d{1,2}[.)]", line):
        return None
    match = _HEADER_RE.match(line)
    if not match:
        return None
    label = match.group("label").strip()
    if len(label.split()) > _MAX_LABEL_WORDS:
        return None
    decorated = bool(match.group("marker") or match.group("bold"))
    if not match.group("colon") and not decorated:
        return None
    field_name = classify_label(label)
    if field_name is None:
        return None
    return field_name, (match.group("rest") or "").strip()


def split_sections(text: str) -> dict[str, list[str]]:
    """Group the lines of ``text`` under the recognised section they follow."""

    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    gap = False
    for line in text.splitlines():
        if not line.strip():
            gap = True
            continue
        header = _match_header(line)
        if header is not None:
            field_name, rest = header
            current = sections.setdefault(field_name, [])
            if rest:
                current.append(rest)
            gap = False
            continue
        if current is None:
            continue
        if gap and current and not _BULLET_RE.match(line):
            # A plain paragraph after a blank line closes the section.
            current = None
            gap = False
            continue
        current.append(line)
        gap = False
    return sections


def _clean(value: str) -> str:
    value = value.replace("**", "").replace("__", "").replace("`", "")
    return value.strip().strip("\"'").strip()


def section_items(lines: Iterable[str], *, split_inline: bool = True) -> list[str]:
    items: list[str] = []
    for line in lines:
        cleaned = _clean(_BULLET_RE.sub("", line.strip()))
        if cleaned:
            items.append(cleaned)
    if split_inline and len(items) == 1 and re.search(r"[,;]", items[0]):
        items = [part.strip().rstrip(".") for part in re.split(r"[;,]", items[0]) if part.strip()]
    return items


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return section_items(value.splitlines())
    if isinstance(value, dict):
        return [f"{key}: {val}" for key, val in value.items()]
    if isinstance(value, Iterable):
        return [_clean(str(item)) for item in value if item is not None and _clean(str(item))]
    return [_clean(str(value))]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(_clean(str(item)) for item in value if item is not None)
    if isinstance(value, dict):
        return "; ".join(f"{key}: {val}" for key, val in value.items())
    return _clean(str(value))


def _flatten_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Map JSON keys onto field names, descending one level into objects."""

    flat: dict[str, Any] = {}
    for key, value in payload.items():
        field_name = classify_label(str(key).replace("_", " "))
        if field_name is not None and field_name not in flat:
            flat[field_name] = value
        elif isinstance(value, dict):
            for inner_key, inner_value in value.items():
                inner_field = classify_label(str(inner_key).replace("_", " "))
                if inner_field is not None and inner_field not in flat:
                    flat[inner_field] = inner_value
    return flat


# ----------------------------------------------------------------------
# general analysis
# ----------------------------------------------------------------------
MAX_TOPICS = 8
MAX_OBJECTIVES = 5
MAX_INSIGHTS = 5
MAX_MATERIALS = 10

_LEVEL_RE = re.compile(r"\b(beginner|introductory|intermediate|advanced|expert)\b", re.IGNORECASE)
_LEVEL_NEAR_LABEL_RE = re.compile(
    r"(?:difficulty|level)[^\n]{0,40}?\b(beginner|introductory|intermediate|advanced|expert)\b",
    re.IGNORECASE,
)


@dataclass(slots=True)
class AnalysisFields:
    summary: str | None = None
    topics: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)
    difficulty_level: str | None = None
    method: str = "none"


def _normalise_level(value: str | None) -> str | None:
    if not value:
        return None
    match = _LEVEL_RE.search(value)
    if not match:
        return None
    level = match.group(1).lower()
    return "beginner" if level == "introductory" else level


def extract_summary(text: str) -> str | None:
    """First paragraph of the summary section, else the first long line."""

    sections = split_sections(text)
    if sections.get("summary"):
        summary = " ".join(_clean(line) for line in sections["summary"] if _clean(line))
        if summary:
            return summary
    for line in text.splitlines():
        stripped = line.strip()
        if len(stripped) > 50 and _match_header(stripped) is None and not _BULLET_RE.match(stripped):
            return _clean(stripped)
    return None


def _filtered(items: list[str], *, min_length: int, limit: int) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        key = item.lower()
        if len(item) < min_length or key in seen:
            continue
        seen.add(key)
        result.append(item)
        if len(result) >= limit:
            break
    return result


def parse_analysis(text: str | None) -> AnalysisFields:
    """Derive summary/topics/insights/objectives from an analysis answer."""

    if not text:
        return AnalysisFields()

    payload = extract_json_payload(text)
    if payload:
        flat = _flatten_payload(payload)
        if flat:
            return AnalysisFields(
                summary=_as_text(flat.get("summary")) or None,
                topics=_filtered(_as_list(flat.get("topics")), min_length=3, limit=MAX_TOPICS),
                insights=_filtered(_as_list(flat.get("insights")), min_length=10, limit=MAX_INSIGHTS),
                learning_objectives=_filtered(
                    _as_list(flat.get("learning_objectives")), min_length=10, limit=MAX_OBJECTIVES
                ),
                difficulty_level=_normalise_level(_as_text(flat.get("difficulty_level"))),
                method="structured_output",
            )

    sections = split_sections(text)
    difficulty = _normalise_level(" ".join(sections.get("difficulty_level", [])))
    if difficulty is None:
        near = _LEVEL_NEAR_LABEL_RE.search(text)
        difficulty = _normalise_level(near.group(1)) if near else None

    return AnalysisFields(
        summary=extract_summary(text),
        topics=_filtered(section_items(sections.get("topics", [])), min_length=3, limit=MAX_TOPICS),
        insights=_filtered(
            section_items(sections.get("insights", []), split_inline=False), min_length=15, limit=MAX_INSIGHTS
        ),
        learning_objectives=_filtered(
            section_items(sections.get("learning_objectives", []), split_inline=False),
            min_length=10,
            limit=MAX_OBJECTIVES,
        ),
        difficulty_level=difficulty,
        method="pattern_matching",
    )


# ----------------------------------------------------------------------
# syllabus extraction
# ----------------------------------------------------------------------
SYLLABUS_TEXT_FIELDS = ("course_code_name", "term", "office_hours", "course_description", "course_format")


def extract_syllabus_entities(text: str | None) -> SyllabusEntities:
    if not text:
        return SyllabusEntities()

    payload = extract_json_payload(text)
    if payload:
        flat = _flatten_payload(payload)
        if any(name in flat for name in (*SYLLABUS_TEXT_FIELDS, "learning_objectives", "course_materials")):
            return SyllabusEntities(
                **{name: _as_text(flat.get(name)) for name in SYLLABUS_TEXT_FIELDS},
                learning_objectives=_filtered(
                    _as_list(flat.get("learning_objectives")), min_length=10, limit=MAX_OBJECTIVES
                ),
                course_materials=_filtered(_as_list(flat.get("course_materials")), min_length=3, limit=MAX_MATERIALS),
            )

    sections = split_sections(text)
    scalars = {
        name: " ".join(section_items(sections.get(name, []), split_inline=False))
        for name in SYLLABUS_TEXT_FIELDS
    }
    return SyllabusEntities(
        **scalars,
        learning_objectives=_filtered(
            section_items(sections.get("learning_objectives", []), split_inline=False),
            min_length=10,
            limit=MAX_OBJECTIVES,
        ),
        course_materials=_filtered(
            section_items(sections.get("course_materials", [])), min_length=3, limit=MAX_MATERIALS
        ),
    )


# ----------------------------------------------------------------------
# course plan extraction
# ----------------------------------------------------------------------
_MODULE_RE = re.compile(r"\b(?:module|week|unit)\s+\d+\b[^\n]*", re.IGNORECASE)
_ASSESSMENT_RE = re.compile(r"\b(quiz|quizzes|exam|assignment|project)\b", re.IGNORECASE)

DEFAULT_MODULES: tuple[str, ...] = (
    "Introduction and Fundamentals",
    "Core Concepts",
    "Advanced Topics",
    "Applications and Review",
)
DEFAULT_ASSESSMENTS: tuple[tuple[str, str], ...] = (
    ("Module Quizzes", "quiz"),
    ("Mid-term Project", "assignment"),
    ("Final Assessment", "assignment"),
)


def extract_modules(text: str | None) -> list[dict[str, Any]]:
    titles: list[str] = []
    for match in _MODULE_RE.finditer(text or ""):
        title = _clean(match.group(0)).rstrip(":").strip()
        if title and title.lower() not in {t.lower() for t in titles}:
            titles.append(title)
    if not titles:
        titles = list(DEFAULT_MODULES)
    return [{"id": index, "title": title, "order": index} for index, title in enumerate(titles, start=1)]


def extract_assessments(text: str | None) -> list[dict[str, Any]]:
    found: list[tuple[str, str]] = []
    for line in (text or "").splitlines():
        stripped = _clean(_BULLET_RE.sub("", line.strip()))
        if not stripped or len(stripped) > 120:
            continue
        match = _ASSESSMENT_RE.search(stripped)
        if not match:
            continue
        kind = "quiz" if match.group(1).lower().startswith("quiz") else "assignment"
        if stripped.lower() not in {title.lower() for title, _ in found}:
            found.append((stripped.rstrip(":"), kind))
    if not found:
        found = list(DEFAULT_ASSESSMENTS)
    return [{"id": index, "title": title, "type": kind} for index, (title, kind) in enumerate(found, start=1)]
