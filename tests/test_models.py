"""Tests for concept_tracker.models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from concept_tracker.models import CodeLocation, Concept, ConceptStore, ConceptUpdate, ExtractedConcept

NOW = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)


def _concept(**overrides) -> Concept:
    data = {
        "id": "c-1",
        "name": "useState",
        "category": "library",
        "explanation": "State hook.",
        "first_seen": NOW,
        "last_seen": NOW,
    }
    data.update(overrides)
    return Concept(**data)


class TestConcept:
    def test_serializes_with_camel_case_keys(self):
        dumped = _concept().model_dump(mode="json", by_alias=True, exclude_none=True)

        assert set(dumped) == {
            "id",
            "name",
            "category",
            "explanation",
            "chatSnippets",
            "codeLocations",
            "firstSeen",
            "lastSeen",
        }
        assert "parent" not in dumped  # Optional fields are omitted when absent

    def test_parses_persisted_document_shape(self):
        concept = Concept.model_validate(
            {
                "id": "c-1",
                "name": "useState",
                "category": "library",
                "parent": "React Hooks",
                "explanation": "State hook.",
                "chatSnippets": [{"timestamp": "2024-01-15T10:30:00.000Z", "content": "we used useState"}],
                "codeLocations": ["src/App.tsx:5"],
                "firstSeen": "2024-01-15T10:30:00.000Z",
                "lastSeen": "2024-01-15T10:30:00.000Z",
            }
        )

        assert concept.parent == "React Hooks"
        assert concept.chat_snippets[0].content == "we used useState"
        assert concept.first_seen == NOW

    @pytest.mark.parametrize("name", ["", "   "])
    def test_rejects_empty_name(self, name):
        with pytest.raises(ValidationError):
            _concept(name=name)

    def test_rejects_unknown_category(self):
        with pytest.raises(ValidationError):
            _concept(category="framework")

    def test_blank_parent_is_none(self):
        assert _concept(parent="  ").parent is None

    def test_code_locations_collapse_duplicates(self):
        concept = _concept(code_locations=["a.py:1", "b.py:2", "a.py:1"])
        assert concept.code_locations == ["a.py:1", "b.py:2"]

    def test_key_is_case_insensitive(self):
        assert _concept(name="UseState").key == _concept(name="usestate").key


class TestConceptStore:
    def test_defaults(self):
        store = ConceptStore(last_updated=NOW)
        assert store.version == "1.0.0"
        assert store.concepts == []


class TestExtractedConcept:
    def test_accepts_extraction_payload(self):
        item = ExtractedConcept.model_validate(
            {"name": "useState", "category": "library", "parent": "React Hooks", "explanation": "..."}
        )
        assert item.parent == "React Hooks"

    def test_name_is_stripped(self):
        assert ExtractedConcept(name="  useState ", category="library").name == "useState"


class TestConceptUpdate:
    def test_tracks_presence_not_truthiness(self):
        update = ConceptUpdate(explanation="")
        assert update.is_set("explanation")
        assert not update.is_set("name")

    def test_explicit_none_is_present(self):
        assert ConceptUpdate(name=None).is_set("name")

    def test_accepts_camel_case_keys(self):
        update = ConceptUpdate.model_validate({"codeLocations": ["a.py:1"]})
        assert update.code_locations == ["a.py:1"]

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ConceptUpdate.model_validate({"explantion": "typo"})


def test_code_location_renders_file_and_line():
    assert str(CodeLocation(file="src/a.py", line=5, context="x")) == "src/a.py:5"
