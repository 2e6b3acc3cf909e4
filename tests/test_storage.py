"""Tests for store persistence and the per-namespace registry."""

import json
from pathlib import Path

import pytest

from concept_tracker.errors import StorageError
from concept_tracker.storage import ConceptStorage, StoreRegistry, namespace_dirname

from conftest import extracted


class TestLoad:
    def test_missing_file_gives_empty_store(self, tmp_path: Path):
        storage = ConceptStorage(tmp_path / "nope" / "concepts.json")
        store = storage.load()

        assert store.concepts == []
        assert store.version == "1.0.0"
        assert not storage.path.exists()  # Loading never writes

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            '{"version": "1.0.0", "concepts": [{"name": "no id"}], "lastUpdated": "2024-01-15T00:00:00Z"}',
            "[]",
        ],
        ids=["invalid-json", "invalid-shape", "wrong-type"],
    )
    def test_corrupt_file_gives_empty_store(self, tmp_path: Path, content: str):
        path = tmp_path / "concepts.json"
        path.write_text(content)

        assert ConceptStorage(path).load().concepts == []

    def test_load_is_cached(self, tmp_path: Path):
        storage = ConceptStorage(tmp_path / "concepts.json")
        assert storage.load() is storage.load()

    def test_reads_saved_document(self, repository, storage):
        repository.add_from_extraction(extracted("useState", parent="React Hooks"))

        fresh = ConceptStorage(storage.path).load()
        assert [c.name for c in fresh.concepts] == ["useState"]
        assert fresh.concepts[0].parent == "React Hooks"


class TestSave:
    def test_writes_documented_shape(self, repository, storage):
        repository.add_from_extraction(extracted("React Hooks"))

        payload = json.loads(storage.path.read_text())
        assert set(payload) == {"version", "concepts", "lastUpdated"}
        assert "firstSeen" in payload["concepts"][0]
        assert "parent" not in payload["concepts"][0]

    def test_bumps_last_updated(self, storage):
        before = storage.load().last_updated
        storage.save()
        assert storage.load().last_updated >= before

    def test_leaves_no_temp_files(self, repository, storage):
        repository.add_from_extraction(extracted("a"))
        repository.add_from_extraction(extracted("b"))

        assert [p.name for p in storage.path.parent.iterdir()] == ["concepts.json"]

    def test_write_failure_raises_storage_error(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        storage = ConceptStorage(blocker / "concepts.json")

        with pytest.raises(StorageError):
            storage.save()

    def test_failed_replace_removes_temp_file(self, tmp_path: Path):
        (tmp_path / "concepts.json").mkdir()
        storage = ConceptStorage(tmp_path / "concepts.json")

        with pytest.raises(StorageError):
            storage.save()

        assert [p.name for p in tmp_path.iterdir()] == ["concepts.json"]


class TestRegistry:
    def test_default_namespace_path(self, tmp_path: Path):
        assert StoreRegistry(tmp_path).path_for() == tmp_path / "concepts.json"

    def test_caches_one_storage_per_namespace(self, tmp_path: Path):
        registry = StoreRegistry(tmp_path)

        assert registry.get("team-a") is registry.get("team-a")
        assert registry.get("team-a") is not registry.get("team-b")
        assert registry.namespaces() == ["team-a", "team-b"]

    def test_namespaces_are_isolated(self, tmp_path: Path):
        from concept_tracker.repository import ConceptRepository

        registry = StoreRegistry(tmp_path)
        ConceptRepository(registry.get("team-a")).add_from_extraction(extracted("useState"))

        assert ConceptRepository(registry.get("team-b")).all() == []
        assert ConceptRepository(registry.get()).all() == []
        assert ConceptRepository(StoreRegistry(tmp_path).get("team-a")).find_by_name("usestate")

    @pytest.mark.parametrize("namespace", ["..", ".", "a/b", "../escape", ""])
    def test_namespace_dirname_stays_inside_root(self, tmp_path: Path, namespace: str):
        dirname = namespace_dirname(namespace)

        assert "/" not in dirname
        assert dirname not in {".", ".."}
        path = StoreRegistry(tmp_path).path_for(namespace)
        assert path.parent.parent == tmp_path / "namespaces"

    def test_namespace_dirname_is_injective_for_similar_names(self):
        assert namespace_dirname("a.b") != namespace_dirname("a_b")
        assert namespace_dirname("a/b") != namespace_dirname("a%2Fb")
