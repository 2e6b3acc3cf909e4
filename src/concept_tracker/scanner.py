"""Find where concepts are mentioned in a codebase.

Walks a project directory, matches each concept name as a whole word
(case-insensitive) on every line of every source file, and reports
``file:line`` locations. Each file is read once per scan, no matter how many
concepts are searched for.

The scanner never touches the store. Callers feed the result to
ConceptRepository.record_scan().
"""

import logging
import os
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_EXCLUDE_NAMES, DEFAULT_INCLUDE_EXTENSIONS, SCAN_CONTEXT_MAX_CHARS
from .errors import ScanError
from .models import CodeLocation, Concept

log = logging.getLogger(__name__)


@dataclass
class ScanOptions:
    root_path: Path
    include_extensions: Sequence[str] | None = None  # "py" or ".py"; None uses the defaults
    exclude_names: Sequence[str] | None = None  # Exact entry names; None uses the defaults

    def extensions(self) -> set[str]:
        values = self.include_extensions if self.include_extensions is not None else DEFAULT_INCLUDE_EXTENSIONS
        return {ext.lower().lstrip(".") for ext in values if ext.strip(".")}

    def excluded(self) -> set[str]:
        values = self.exclude_names if self.exclude_names is not None else DEFAULT_EXCLUDE_NAMES
        return set(values)


def concept_pattern(name: str) -> re.Pattern[str]:
    """Whole-word, case-insensitive pattern for a concept name.

    Word boundaries are expressed as "not next to a word character" so names
    that start or end with punctuation (``C++``, ``async/await``) still match.
    """
    return re.compile(rf"(?<!\w){re.escape(name.strip())}(?!\w)", re.IGNORECASE)


def _check_root(root: Path) -> Path:
    if not root.exists():
        raise ScanError(f"Scan root does not exist: {root}", details={"root": str(root)})
    if not root.is_dir():
        raise ScanError(f"Scan root is not a directory: {root}", details={"root": str(root)})
    try:
        os.listdir(root)
    except OSError as e:
        raise ScanError(f"Cannot read scan root {root}: {e}", details={"root": str(root)}) from e
    return root


def iter_source_files(options: ScanOptions) -> Iterator[Path]:
    """Yield candidate files under the root in a stable (sorted) order.

    Hidden entries and excluded names are skipped. Symlinked directories are
    not followed; unreadable directories are skipped.
    """
    root = _check_root(Path(options.root_path))
    extensions = options.extensions()
    excluded = options.excluded()

    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            log.debug("Skipping unreadable directory %s: %s", directory, e)
            continue

        subdirs: list[Path] = []
        for entry in entries:
            if entry.name in excluded or entry.name.startswith("."):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    suffix = Path(entry.name).suffix.lower().lstrip(".")
                    if suffix in extensions:
                        yield Path(entry.path)
            except OSError as e:
                log.debug("Skipping %s: %s", entry.path, e)

        # Depth-first, in name order
        stack.extend(reversed(subdirs))


def _read_lines(path: Path) -> list[str] | None:
    try:
        return path.read_text(encoding="utf-8").split("\n")
    except (OSError, UnicodeDecodeError) as e:
        log.debug("Skipping unreadable file %s: %s", path, e)
        return None


def scan_concepts(
    concepts: Sequence[Concept],
    options: ScanOptions,
) -> dict[str, list[CodeLocation]]:
    """Map concept id to the locations that mention it.

    Only concepts with at least one match appear in the result. Locations are
    ordered by file walk order, then line number.

    Raises:
        ScanError: If the root path is missing or unreadable.
    """
    root = Path(options.root_path)
    patterns = [(c.id, concept_pattern(c.name)) for c in concepts]
    results: dict[str, list[CodeLocation]] = {}
    files_scanned = 0

    for path in iter_source_files(options):
        lines = _read_lines(path)
        if lines is None:
            continue
        files_scanned += 1
        relative = path.relative_to(root).as_posix()

        for concept_id, pattern in patterns:
            for number, line in enumerate(lines, start=1):
                if pattern.search(line):
                    results.setdefault(concept_id, []).append(
                        CodeLocation(
                            file=relative,
                            line=number,
                            context=line.strip()[:SCAN_CONTEXT_MAX_CHARS],
                        )
                    )

    # Re-key in concept order so the result does not depend on file order
    ordered = {c.id: results[c.id] for c in concepts if c.id in results}
    log.info(
        "Scanned %d file(s) for %d concept(s); %d matched",
        files_scanned,
        len(concepts),
        len(ordered),
    )
    return ordered


def scan_for_concept(concept: Concept, options: ScanOptions) -> list[CodeLocation]:
    return scan_concepts([concept], options).get(concept.id, [])
