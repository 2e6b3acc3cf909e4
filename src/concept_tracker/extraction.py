"""Boundary to the concept extraction collaborator.

The model call that turns conversation text into concepts lives outside this
package. Anything with an ``extract(text) -> list[ExtractedConcept]`` method
can be plugged in; this module validates what it returns and stores it with
merge-on-extraction semantics.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from .config import CONTEXT_SNIPPET_LIMIT
from .errors import ExtractionError, InvalidOperationError
from .models import ExtractedConcept, ExtractionResult, IngestResult, SkippedConcept
from .repository import ConceptRepository

log = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract(self, text: str) -> list[ExtractedConcept]: ...


class PayloadExtractor:
    """Extractor that replays an already-produced extraction payload.

    Used when extraction ran elsewhere (a hook, another process) and only the
    resulting JSON reaches us.
    """

    def __init__(self, payload: str | dict[str, Any]) -> None:
        self.payload = payload

    def extract(self, text: str) -> list[ExtractedConcept]:
        return parse_extraction_payload(self.payload)


def _extract_first_json_object(text: str) -> dict:
    """Extract the first valid JSON object from text.

    Some models return extra content after the JSON object even with
    response_format=json_object.

    Raises:
        json.JSONDecodeError: If no valid JSON object found.
    """
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    if start == -1:
        raise json.JSONDecodeError("No JSON object found", text, 0)

    obj, _ = json.JSONDecoder().raw_decode(text, start)
    return obj


def parse_extraction_payload(raw: str | dict[str, Any]) -> list[ExtractedConcept]:
    """Validate an extraction payload of the form ``{"concepts": [...]}``.

    Malformed payloads are logged and yield no concepts.
    """
    try:
        data = _extract_first_json_object(raw) if isinstance(raw, str) else raw
        return ExtractionResult.model_validate(data).concepts
    except json.JSONDecodeError as e:
        log.warning("Failed to parse extraction payload: %s", e)
    except ValidationError as e:
        log.warning("Extraction payload has unexpected shape: %s", e)
    return []


def build_context_snippet(text: str, limit: int = CONTEXT_SNIPPET_LIMIT) -> str:
    """Provenance excerpt stored with each extracted concept."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def ingest_conversation(
    repository: ConceptRepository,
    extractor: Extractor,
    text: str,
    save_context: bool = True,
    min_length: int = 0,
    context_limit: int = CONTEXT_SNIPPET_LIMIT,
) -> IngestResult:
    """Extract concepts from a conversation and merge them into the store.

    Text shorter than ``min_length`` is ignored without calling the
    extractor. Concepts whose parent chain would loop back to them are
    reported in ``skipped``; the rest are still stored.

    Raises:
        ExtractionError: If the extractor fails. Nothing is stored.
    """
    if len(text.strip()) < min_length:
        log.debug("Conversation shorter than %d chars; skipping extraction", min_length)
        return IngestResult(ignored=True)

    try:
        extracted = extractor.extract(text)
    except Exception as e:
        raise ExtractionError(f"Extraction failed: {e}") from e

    provenance = build_context_snippet(text, context_limit) if save_context else None
    result = IngestResult()
    for item in extracted:
        try:
            result.concepts.append(repository.add_from_extraction(item, provenance))
        except InvalidOperationError as e:
            log.warning("Skipping extracted concept %s: %s", item.name, e.message)
            result.skipped.append(SkippedConcept(name=item.name, reason=e.message))

    log.info(
        "Ingested %d concept(s), skipped %d",
        len(result.concepts),
        len(result.skipped),
    )
    return result
