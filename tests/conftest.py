"""Shared test fixtures for the concept_tracker test suite.

Design:
- tmp_store: isolated storage root in a temp directory
- repository: ConceptRepository over the default namespace of tmp_store
- runner / cli_invoke: CliRunner pointed at tmp_store
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from concept_tracker.cli import cli
from concept_tracker.models import ExtractedConcept
from concept_tracker.repository import ConceptRepository
from concept_tracker.storage import ConceptStorage, StoreRegistry


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def tmp_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty storage root; environment overrides point at it."""
    root = tmp_path / "store"
    monkeypatch.setenv("CONCEPT_TRACKER_STORAGE_PATH", str(root))
    monkeypatch.delenv("STORAGE_PATH", raising=False)
    monkeypatch.delenv("CONCEPT_TRACKER_NAMESPACE", raising=False)
    return root


@pytest.fixture
def registry(tmp_store: Path) -> StoreRegistry:
    return StoreRegistry(tmp_store)


@pytest.fixture
def storage(registry: StoreRegistry) -> ConceptStorage:
    return registry.get()


@pytest.fixture
def repository(storage: ConceptStorage) -> ConceptRepository:
    return ConceptRepository(storage)


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def cli_invoke(runner: CliRunner, tmp_store: Path):
    """Helper for invoking the CLI against tmp_store.

    Usage:
        def test_list(cli_invoke):
            result = cli_invoke(["list"])
            assert result.exit_code == 0
    """

    def _invoke(args: list[str], input: str | None = None):
        return runner.invoke(
            cli,
            args,
            input=input,
            catch_exceptions=False,
            env={"CONCEPT_TRACKER_STORAGE_PATH": str(tmp_store)},
        )

    return _invoke


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def extracted(
    name: str,
    category: str = "library",
    explanation: str = "",
    parent: str | None = None,
) -> ExtractedConcept:
    """Build an ExtractedConcept with a default explanation.

    Usage in tests:
        from conftest import extracted
        repository.add_from_extraction(extracted("useState", parent="React Hooks"))
    """
    return ExtractedConcept(
        name=name,
        category=category,
        explanation=explanation or f"About {name}.",
        parent=parent,
    )
