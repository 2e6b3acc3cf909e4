"""Pydantic models for the concept store.

Models serialize with camelCase keys (``chatSnippets``, ``firstSeen``, ...) so
the persisted document and the data export keep their documented shape.
Use ``model_dump(mode="json", by_alias=True, exclude_none=True)`` to write them.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import STORE_VERSION

ConceptCategory = Literal["language", "library", "pattern", "architecture"]

# Fixed order used wherever concepts are grouped by category
CATEGORY_ORDER: tuple[ConceptCategory, ...] = ("language", "library", "pattern", "architecture")

CATEGORY_TITLES: dict[str, str] = {
    "language": "Language Features",
    "library": "Libraries & Frameworks",
    "pattern": "Design Patterns",
    "architecture": "Architecture",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be empty")
    return value


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ChatSnippet(_CamelModel):
    """A timestamped excerpt of the conversation a concept was seen in."""

    timestamp: datetime
    content: str


class Concept(_CamelModel):
    """A named unit of technical knowledge."""

    id: str
    name: str
    category: ConceptCategory
    parent: str | None = None  # Name (not id) of the parent concept; may dangle
    explanation: str = ""
    chat_snippets: list[ChatSnippet] = Field(default_factory=list)  # Chronological, append-only
    code_locations: list[str] = Field(default_factory=list)  # "file:line", duplicates collapsed
    first_seen: datetime
    last_seen: datetime

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _require_name(value)

    @field_validator("parent")
    @classmethod
    def check_parent(cls, value: str | None) -> str | None:
        return _blank_to_none(value)

    @field_validator("code_locations")
    @classmethod
    def dedupe_locations(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def key(self) -> str:
        """Case-insensitive join key used for name lookups and the hierarchy."""
        return name_key(self.name)


def name_key(name: str) -> str:
    return name.strip().casefold()


class ConceptStore(_CamelModel):
    """The persisted aggregate: one document per namespace."""

    version: str = STORE_VERSION
    concepts: list[Concept] = Field(default_factory=list)
    last_updated: datetime


class ExtractedConcept(_CamelModel):
    """A concept as produced by the extraction collaborator."""

    name: str
    category: ConceptCategory
    explanation: str = ""
    parent: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _require_name(value)

    @field_validator("parent")
    @classmethod
    def check_parent(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class ExtractionResult(_CamelModel):
    """Payload shape returned by the extraction collaborator."""

    concepts: list[ExtractedConcept] = Field(default_factory=list)


class ConceptUpdate(_CamelModel):
    """Partial update for a concept.

    A field counts as present only when it was explicitly set, so
    ``ConceptUpdate(explanation="")`` clears the explanation while
    ``ConceptUpdate()`` changes nothing. ``code_locations`` is unioned with
    the existing locations; ``snippet`` is appended as a new ChatSnippet.
    Unknown fields are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    explanation: str | None = None
    code_locations: list[str] | None = None
    snippet: str | None = None

    def is_set(self, field_name: str) -> bool:
        return field_name in self.model_fields_set


class CodeLocation(BaseModel):
    """One line of source that mentions a concept."""

    file: str  # Path relative to the scan root
    line: int  # 1-based
    context: str  # Trimmed line text

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


class ScanUpdateResult(BaseModel):
    """Outcome of persisting scanner output into the store."""

    updated: list[str] = Field(default_factory=list)  # Concept ids whose locations changed
    missing: list[str] = Field(default_factory=list)  # Ids in the scan result no longer in the store


class SkippedConcept(BaseModel):
    """An extracted concept that could not be stored."""

    name: str
    reason: str


class IngestResult(BaseModel):
    """Result of ingesting one conversation."""

    concepts: list[Concept] = Field(default_factory=list)  # Created or merged, in extraction order
    skipped: list[SkippedConcept] = Field(default_factory=list)
    ignored: bool = False  # True when the text was below the minimum length
