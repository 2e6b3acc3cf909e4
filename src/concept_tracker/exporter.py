"""Export concepts as JSON data or as a Markdown document.

JSON exports are lossless for every field they include and can be read back
with import_concepts(). Markdown exports group the concept forest by
category and are meant for people, not round-trips.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import ValidationError

from .config import (
    MAX_HEADING_LEVEL,
    NARRATIVE_LOCATION_LIMIT,
    NARRATIVE_ROOT_HEADING_LEVEL,
    NARRATIVE_SNIPPET_CHARS,
    NARRATIVE_SNIPPET_LIMIT,
)
from .errors import InvalidOperationError
from .hierarchy import TreeNode, build_forest
from .models import CATEGORY_ORDER, CATEGORY_TITLES, Concept

ExportFormat = Literal["json", "markdown"]

# Concept fields always present in a JSON export record
_CORE_FIELDS = {"id", "name", "category", "parent", "explanation", "first_seen", "last_seen"}


@dataclass
class ExportOptions:
    format: ExportFormat = "json"
    concept_ids: Sequence[str] | None = None  # None or empty exports everything
    include_snippets: bool = True
    include_code_locations: bool = True


def select_concepts(concepts: Sequence[Concept], concept_ids: Sequence[str] | None) -> list[Concept]:
    """Keep only the given ids (in store order); no ids keeps everything."""
    if not concept_ids:
        return list(concepts)
    wanted = set(concept_ids)
    return [c for c in concepts if c.id in wanted]


def export_concepts(
    concepts: Sequence[Concept],
    options: ExportOptions | None = None,
    now: datetime | None = None,
) -> str:
    """Render concepts in the requested format."""
    options = options or ExportOptions()
    now = now or datetime.now(UTC)
    selected = select_concepts(concepts, options.concept_ids)

    if options.format == "json":
        return export_json(selected, options, now)
    if options.format == "markdown":
        return export_markdown(selected, options, now)
    raise InvalidOperationError.validation(f"Unknown export format: {options.format}")


# ─────────────────────────────────────────────────────────────────────────────
# JSON
# ─────────────────────────────────────────────────────────────────────────────


def _record(concept: Concept, options: ExportOptions) -> dict[str, Any]:
    fields = set(_CORE_FIELDS)
    if options.include_snippets:
        fields.add("chat_snippets")
    if options.include_code_locations:
        fields.add("code_locations")
    return concept.model_dump(mode="json", by_alias=True, exclude_none=True, include=fields)


def export_json(concepts: Sequence[Concept], options: ExportOptions, now: datetime) -> str:
    payload = {
        "exportedAt": now.isoformat(),
        "count": len(concepts),
        "concepts": [_record(c, options) for c in concepts],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def import_concepts(text: str) -> list[Concept]:
    """Parse a JSON export back into concepts.

    Raises:
        InvalidOperationError: If the text is not a valid export document.
    """
    try:
        payload = json.loads(text)
        records = payload["concepts"]
        return [Concept.model_validate(record) for record in records]
    except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
        raise InvalidOperationError.validation(f"Not a concept export: {e}") from e


# ─────────────────────────────────────────────────────────────────────────────
# Markdown
# ─────────────────────────────────────────────────────────────────────────────


def _format_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def _truncate(text: str, limit: int) -> str:
    text = text.replace("\n", " ")
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def export_markdown(concepts: Sequence[Concept], options: ExportOptions, now: datetime) -> str:
    lines = [
        "# Concept Knowledge Base",
        "",
        f"*Exported on {_format_date(now)}*",
        "",
        f"**Total concepts:** {len(concepts)}",
        "",
        "---",
        "",
    ]

    forest = build_forest(concepts)
    for category in CATEGORY_ORDER:
        roots = [node for node in forest if node.concept.category == category]
        if not roots:
            continue

        lines.append(f"## {CATEGORY_TITLES[category]}")
        lines.append("")
        for root in roots:
            _render_tree(root, lines, options)
        lines.append("")

    return "\n".join(lines)


def _render_tree(root: TreeNode, lines: list[str], options: ExportOptions) -> None:
    stack: list[tuple[TreeNode, int]] = [(root, NARRATIVE_ROOT_HEADING_LEVEL)]
    while stack:
        node, level = stack.pop()
        _render_concept(node.concept, level, lines, options)
        stack.extend((child, level + 1) for child in reversed(node.children))


def _render_concept(concept: Concept, level: int, lines: list[str], options: ExportOptions) -> None:
    heading = "#" * min(level, MAX_HEADING_LEVEL)
    lines.append(f"{heading} {concept.name}")
    lines.append("")

    if concept.parent:
        lines.append(f"*Part of: {concept.parent}*")
        lines.append("")

    lines.append(concept.explanation)
    lines.append("")

    if options.include_code_locations and concept.code_locations:
        lines.append("**Code Locations:**")
        for location in concept.code_locations[:NARRATIVE_LOCATION_LIMIT]:
            lines.append(f"- `{location}`")
        hidden = len(concept.code_locations) - NARRATIVE_LOCATION_LIMIT
        if hidden > 0:
            lines.append(f"- *...and {hidden} more*")
        lines.append("")

    if options.include_snippets and concept.chat_snippets:
        lines.append("**References:**")
        recent = concept.chat_snippets[::-1][:NARRATIVE_SNIPPET_LIMIT]
        for snippet in recent:
            date = snippet.timestamp.date().isoformat()
            lines.append(f"- *{date}*: {_truncate(snippet.content, NARRATIVE_SNIPPET_CHARS)}")
        hidden = len(concept.chat_snippets) - NARRATIVE_SNIPPET_LIMIT
        if hidden > 0:
            lines.append(f"- *...and {hidden} more*")
        lines.append("")
