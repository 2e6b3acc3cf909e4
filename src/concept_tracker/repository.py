"""Concept repository: the only code that mutates a concept store.

Concepts reference their parent by *name*, not id. Every lookup resolves the
name afresh (case-insensitively), so a renamed or deleted parent leaves its
children dangling rather than pointing at a stale id.

Invariants enforced here:
- Names are unique (case-insensitive) and non-empty.
- The parent graph stays acyclic. Every check runs against the unmodified
  graph before anything is mutated.
- Failed operations leave the store untouched; successful ones save the
  whole document once.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import ValidationError

from .errors import ConflictError, InvalidOperationError, NotFoundError, StorageError
from .models import (
    ChatSnippet,
    CodeLocation,
    Concept,
    ConceptUpdate,
    ExtractedConcept,
    ScanUpdateResult,
    name_key,
)
from .storage import ConceptStorage

log = logging.getLogger(__name__)


def _ensure_aware(dt: datetime) -> datetime:
    """Assume UTC for naive datetimes read from hand-edited documents."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _merge_locations(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    return list(dict.fromkeys([*existing, *new]))


class ConceptRepository:
    """CRUD, lookup and hierarchy edits over one ConceptStorage."""

    def __init__(self, storage: ConceptStorage) -> None:
        self.storage = storage

    @property
    def _concepts(self) -> list[Concept]:
        return self.storage.load().concepts

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def all(self) -> list[Concept]:
        return list(self._concepts)

    def get(self, concept_id: str) -> Concept | None:
        return next((c for c in self._concepts if c.id == concept_id), None)

    def require(self, concept_id: str) -> Concept:
        concept = self.get(concept_id)
        if concept is None:
            raise NotFoundError.concept(concept_id)
        return concept

    def find_by_name(self, name: str) -> Concept | None:
        """Case-insensitive exact match; the first match wins."""
        key = name_key(name)
        return next((c for c in self._concepts if c.key == key), None)

    def search(
        self,
        query: str = "",
        category: str | None = None,
        limit: int | None = None,
    ) -> list[Concept]:
        """Substring search over name and explanation, optionally by category.

        An empty query matches every concept.
        """
        needle = query.casefold()
        matches = [
            c
            for c in self._concepts
            if (not needle or needle in c.name.casefold() or needle in c.explanation.casefold())
            and (not category or c.category == category)
        ]
        if limit is not None:
            matches = matches[:limit]
        return matches

    def ancestors(self, concept_id: str) -> list[Concept]:
        """Resolved parent chain, nearest first. Stops at a dangling name."""
        concept = self.require(concept_id)
        index = self._name_index()
        chain: list[Concept] = []
        seen = {concept.key}
        current = concept.parent
        while current:
            parent = index.get(name_key(current))
            if parent is None or parent.key in seen:
                break
            chain.append(parent)
            seen.add(parent.key)
            current = parent.parent
        return chain

    def orphans(self) -> list[Concept]:
        """Concepts whose parent name does not resolve to any concept."""
        index = self._name_index()
        return [c for c in self._concepts if c.parent and name_key(c.parent) not in index]

    # ─────────────────────────────────────────────────────────────────────
    # Creation
    # ─────────────────────────────────────────────────────────────────────

    def add_from_extraction(
        self,
        extracted: ExtractedConcept,
        provenance: str | None = None,
    ) -> Concept:
        """Create a concept, or merge into the existing one with the same name.

        A merge only appends the provenance snippet (when given) and bumps
        last_seen; category, explanation and parent of the existing concept
        are kept. Re-extracting a concept therefore never duplicates it.

        Raises:
            InvalidOperationError: If a new concept's parent chain leads back to it.
        """
        existing = self.find_by_name(extracted.name)
        if existing is None:
            return self._insert(extracted, provenance)

        now = self._touch(existing)
        if provenance:
            existing.chat_snippets.append(ChatSnippet(timestamp=now, content=provenance))
        self._save()
        log.debug("Merged extraction into existing concept %s (%s)", existing.name, existing.id)
        return existing

    def add_many_from_extraction(
        self,
        extracted: Sequence[ExtractedConcept],
        provenance: str | None = None,
    ) -> list[Concept]:
        return [self.add_from_extraction(item, provenance) for item in extracted]

    def create(self, extracted: ExtractedConcept) -> Concept:
        """Create a concept; unlike add_from_extraction, a name collision is an error.

        Raises:
            ConflictError: If a concept with the same name already exists.
            InvalidOperationError: If the parent chain leads back to the new name.
        """
        existing = self.find_by_name(extracted.name)
        if existing is not None:
            raise ConflictError.duplicate_name(extracted.name, existing.id)
        return self._insert(extracted, None)

    def _insert(self, extracted: ExtractedConcept, provenance: str | None) -> Concept:
        # A dangling chain may already name the new concept (A -> "B" before B exists)
        if extracted.parent and self._would_create_cycle({name_key(extracted.name)}, extracted.parent):
            raise InvalidOperationError.cycle(extracted.name, extracted.parent)

        now = datetime.now(UTC)
        concept = Concept(
            id=str(uuid4()),
            name=extracted.name,
            category=extracted.category,
            parent=extracted.parent,
            explanation=extracted.explanation,
            chat_snippets=[ChatSnippet(timestamp=now, content=provenance)] if provenance else [],
            code_locations=[],
            first_seen=now,
            last_seen=now,
        )
        self._concepts.append(concept)
        self._save()
        log.info("Added concept %s (%s)", concept.name, concept.category)
        return concept

    # ─────────────────────────────────────────────────────────────────────
    # Mutation
    # ─────────────────────────────────────────────────────────────────────

    def update(
        self,
        concept_id: str,
        changes: ConceptUpdate | None = None,
        **fields: object,
    ) -> Concept:
        """Apply a partial update.

        Pass either a ConceptUpdate or keyword arguments (name, explanation,
        code_locations, snippet). Only fields that are present are applied.

        Raises:
            NotFoundError: If the id does not resolve.
            ConflictError: If the new name belongs to another concept.
            InvalidOperationError: On an empty name or explanation=None, an
                empty snippet, or a rename that closes a parent cycle.
        """
        if changes is None:
            try:
                changes = ConceptUpdate.model_validate(fields)
            except ValidationError as e:
                raise InvalidOperationError.validation(f"Invalid update: {e}") from e
        concept = self.require(concept_id)

        new_name: str | None = None
        if changes.is_set("name"):
            new_name = (changes.name or "").strip()
            if not new_name:
                raise InvalidOperationError.validation("Concept name must not be empty")
            other = self.find_by_name(new_name)
            if other is not None and other.id != concept.id:
                raise ConflictError.duplicate_name(new_name, other.id)
            if concept.parent and self._would_create_cycle(
                {concept.key, name_key(new_name)}, concept.parent
            ):
                raise InvalidOperationError.cycle(new_name, concept.parent)

        if changes.is_set("explanation") and changes.explanation is None:
            raise InvalidOperationError.validation("Explanation must be a string")

        if changes.is_set("snippet") and changes.snippet is not None and not changes.snippet.strip():
            raise InvalidOperationError.validation("Snippet must not be empty")

        now = self._touch(concept)
        if new_name is not None:
            concept.name = new_name
        if changes.is_set("explanation"):
            concept.explanation = changes.explanation or ""
        if changes.code_locations is not None:
            concept.code_locations = _merge_locations(concept.code_locations, changes.code_locations)
        if changes.snippet is not None:
            concept.chat_snippets.append(ChatSnippet(timestamp=now, content=changes.snippet))

        self._save()
        return concept

    def replace_code_locations(self, concept_id: str, locations: Iterable[str]) -> Concept:
        concept = self.require(concept_id)
        self._touch(concept)
        concept.code_locations = list(dict.fromkeys(locations))
        self._save()
        return concept

    def record_scan(
        self,
        results: Mapping[str, Sequence[CodeLocation | str]],
        replace: bool = False,
    ) -> ScanUpdateResult:
        """Persist scanner output with a single save.

        Locations are unioned with the existing ones, or replace them when
        ``replace`` is set. Only concepts whose locations changed are touched
        and reported in ``updated``; ids that no longer exist are reported in
        ``missing``.
        """
        outcome = ScanUpdateResult()
        for concept_id, locations in results.items():
            concept = self.get(concept_id)
            if concept is None:
                outcome.missing.append(concept_id)
                continue

            rendered = [str(location) for location in locations]
            if replace:
                merged = list(dict.fromkeys(rendered))
            else:
                merged = _merge_locations(concept.code_locations, rendered)
            if merged == concept.code_locations:
                continue
            concept.code_locations = merged
            self._touch(concept)
            outcome.updated.append(concept_id)

        if outcome.missing:
            log.warning("Scan results for %d unknown concept(s) ignored", len(outcome.missing))
        if outcome.updated:
            self._save()
        return outcome

    def delete(self, concept_id: str) -> bool:
        """Remove a concept. Children keep their (now dangling) parent name."""
        concepts = self._concepts
        for index, concept in enumerate(concepts):
            if concept.id == concept_id:
                del concepts[index]
                self._save()
                log.info("Deleted concept %s (%s)", concept.name, concept_id)
                return True
        return False

    def reparent(self, concept_id: str, parent_name: str | None) -> Concept:
        """Attach a concept under another concept, or detach it with None.

        Raises:
            NotFoundError: If the id or the parent name does not resolve.
            InvalidOperationError: If the new edge would create a cycle.
        """
        concept = self.require(concept_id)

        if parent_name is None or not parent_name.strip():
            new_parent = None
        else:
            parent = self.find_by_name(parent_name)
            if parent is None:
                raise NotFoundError.parent(parent_name)
            if self._would_create_cycle({concept.key}, parent.name):
                raise InvalidOperationError.cycle(concept.name, parent.name)
            new_parent = parent.name

        concept.parent = new_parent
        self._touch(concept)
        self._save()
        log.info("Moved concept %s under %s", concept.name, new_parent or "<root>")
        return concept

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _name_index(self) -> dict[str, Concept]:
        index: dict[str, Concept] = {}
        for concept in self._concepts:
            index.setdefault(concept.key, concept)
        return index

    def _would_create_cycle(self, target_keys: set[str], parent_name: str) -> bool:
        """Walk parent names upward from ``parent_name`` through the current graph.

        Reaching one of ``target_keys`` means the candidate edge closes a
        loop. Revisiting a name means the chain is already cyclic, which is
        rejected the same way.
        """
        index = self._name_index()
        visited: set[str] = set()
        current: str | None = parent_name
        while current:
            key = name_key(current)
            if key in target_keys or key in visited:
                return True
            visited.add(key)
            parent = index.get(key)
            current = parent.parent if parent else None
        return False

    @staticmethod
    def _touch(concept: Concept) -> datetime:
        """Bump last_seen; it never moves backwards even if the clock does."""
        now = datetime.now(UTC)
        previous = _ensure_aware(concept.last_seen)
        if now < previous:
            now = previous
        concept.last_seen = now
        return now

    def _save(self) -> None:
        try:
            self.storage.save()
        except StorageError:
            # Drop in-memory changes so the cache matches the untouched document
            self.storage.reload()
            raise
