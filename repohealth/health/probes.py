"""Filesystem and text probes shared by all assessors."""

import fnmatch
import json
import logging
import os
import re
import threading
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import toml

from repohealth.health.errors import AssessmentCancelled

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192

SOURCE_EXTENSIONS = frozenset(
    {
        ".py",
        ".js",
        ".jsx",
        ".ts",
        ".tsx",
        ".mjs",
        ".cjs",
        ".go",
        ".rs",
        ".java",
        ".kt",
        ".scala",
        ".rb",
        ".php",
        ".c",
        ".h",
        ".cc",
        ".cpp",
        ".hpp",
        ".cs",
        ".swift",
        ".vue",
        ".svelte",
    }
)

TEST_DIR_NAMES = frozenset({"tests", "test", "__tests__", "spec", "specs", "testing"})

TEST_FILE_PATTERNS = (
    "test_*.py",
    "*_test.py",
    "*.test.js",
    "*.test.jsx",
    "*.test.ts",
    "*.test.tsx",
    "*.spec.js",
    "*.spec.jsx",
    "*.spec.ts",
    "*.spec.tsx",
    "*_test.go",
    "*_spec.rb",
    "*Test.java",
)


@dataclass(frozen=True)
class TextMatch:
    """A single regex match inside a text file."""

    path: str  # relative, POSIX separators
    line_no: int
    text: str  # the matched text
    line: str  # the full line, stripped


class ProjectFiles:
    """Read-only view of a project tree honoring the configured exclusions.

    The file listing is computed once and cached; one instance is created per
    assessor so nothing is shared across concurrently running assessors.
    """

    def __init__(
        self,
        root: Path,
        exclude_paths: Iterable[str] = (),
        cancel_event: threading.Event | None = None,
        max_scan_bytes: int = 1_048_576,
    ) -> None:
        self.root = root
        self.exclude_paths = tuple(exclude_paths)
        self.cancel_event = cancel_event or threading.Event()
        self.max_scan_bytes = max_scan_bytes
        self._files: list[Path] | None = None

    # -- existence -------------------------------------------------------

    def file_exists(self, relpath: str) -> bool:
        return (self.root / relpath).is_file()

    def dir_exists(self, relpath: str) -> bool:
        return (self.root / relpath).is_dir()

    def any_exists(self, *relpaths: str) -> bool:
        """True if any of the paths exists (file or directory)."""
        return any((self.root / p).exists() for p in relpaths)

    def first_existing(self, *relpaths: str) -> str | None:
        for relpath in relpaths:
            if (self.root / relpath).exists():
                return relpath
        return None

    def glob_root(self, pattern: str) -> list[Path]:
        """Glob relative to the project root, ignoring exclusions."""
        return sorted(self.root.glob(pattern))

    # -- reading ---------------------------------------------------------

    def read_text(self, relpath: str) -> str | None:
        """Read a file as text, or None if it does not exist or is unreadable."""
        path = self.root / relpath
        if not path.is_file():
            return None
        try:
            return path.read_text(errors="replace")
        except OSError as e:
            logger.debug(f"Failed to read {path}: {e}")
            return None

    def read_json(self, relpath: str) -> Any | None:
        """Parse a JSON file, or None if it is missing or malformed."""
        text = self.read_text(relpath)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug(f"Failed to parse {relpath}: {e}")
            return None

    def contains(self, relpath: str, pattern: str, flags: int = 0) -> bool:
        """Check whether a single file contains a regex match."""
        text = self.read_text(relpath)
        return text is not None and re.search(pattern, text, flags) is not None

    def age_days(self, relpath: str, now: float | None = None) -> float | None:
        """Days since the file was last modified, or None if missing."""
        path = self.root / relpath
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        return ((now if now is not None else time.time()) - mtime) / 86400

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    # -- walking ---------------------------------------------------------

    def is_excluded(self, relpath: str) -> bool:
        """Check a relative POSIX path against the exclusion globs."""
        parts = relpath.split("/")
        for pattern in self.exclude_paths:
            pattern = pattern.strip("/")
            if fnmatch.fnmatch(relpath, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True
        return False

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise AssessmentCancelled("assessment cancelled")

    def all_files(self) -> list[Path]:
        """Every non-excluded file under the root, sorted."""
        if self._files is None:
            self._files = sorted(self._walk(self.root, honor_excludes=True))
        return self._files

    def iter_files(
        self,
        patterns: Iterable[str] | None = None,
        under: str | None = None,
        honor_excludes: bool = True,
    ) -> Iterator[Path]:
        """Iterate files whose name matches any of ``patterns``.

        Args:
            patterns: fnmatch patterns applied to the file name (all if None)
            under: Restrict to a subdirectory of the root
            honor_excludes: Apply ``exclude_paths``; build-artifact checks
                pass False to look inside ``dist``/``build``
        """
        pattern_list = list(patterns) if patterns is not None else None
        if under is None and honor_excludes:
            candidates: Iterable[Path] = self.all_files()
        else:
            base = self.root / under if under else self.root
            if not base.is_dir():
                return
            candidates = sorted(self._walk(base, honor_excludes=honor_excludes))

        for path in candidates:
            self.check_cancelled()
            if pattern_list is None or any(fnmatch.fnmatch(path.name, p) for p in pattern_list):
                yield path

    def iter_text_files(
        self, patterns: Iterable[str] | None = None, under: str | None = None
    ) -> Iterator[tuple[Path, str]]:
        """Iterate ``(path, content)`` for text files, skipping binaries and huge files."""
        for path in self.iter_files(patterns, under=under):
            content = self._read_if_text(path)
            if content is not None:
                yield path, content

    def count_files(self, patterns: Iterable[str] | None = None, under: str | None = None) -> int:
        return sum(1 for _ in self.iter_files(patterns, under=under))

    def find_matches(
        self,
        pattern: str | re.Pattern[str],
        patterns: Iterable[str] | None = None,
        under: str | None = None,
        flags: int = 0,
    ) -> list[TextMatch]:
        """Find every regex match in text files, one entry per match."""
        regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
        matches: list[TextMatch] = []
        for path, content in self.iter_text_files(patterns, under=under):
            relpath = self.relative(path)
            for line_no, line in enumerate(content.splitlines(), start=1):
                for match in regex.finditer(line):
                    matches.append(TextMatch(relpath, line_no, match.group(0), line.strip()))
        return matches

    def count_matches(
        self,
        pattern: str | re.Pattern[str],
        patterns: Iterable[str] | None = None,
        under: str | None = None,
        flags: int = 0,
    ) -> int:
        """Number of lines containing a match."""
        regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
        count = 0
        for _, content in self.iter_text_files(patterns, under=under):
            count += sum(1 for line in content.splitlines() if regex.search(line))
        return count

    def any_match(
        self,
        pattern: str | re.Pattern[str],
        patterns: Iterable[str] | None = None,
        flags: int = 0,
    ) -> bool:
        regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
        return any(regex.search(content) for _, content in self.iter_text_files(patterns))

    # -- classification --------------------------------------------------

    def is_test_file(self, path: Path) -> bool:
        relparts = path.relative_to(self.root).parts[:-1]
        if any(part in TEST_DIR_NAMES for part in relparts):
            return True
        return any(fnmatch.fnmatch(path.name, p) for p in TEST_FILE_PATTERNS)

    def source_files(self) -> list[Path]:
        """Source code files that are not tests."""
        return [
            p
            for p in self.iter_files()
            if p.suffix in SOURCE_EXTENSIONS and not self.is_test_file(p)
        ]

    def test_files(self) -> list[Path]:
        return [p for p in self.iter_files() if p.suffix in SOURCE_EXTENSIONS and self.is_test_file(p)]

    # -- internals -------------------------------------------------------

    def _walk(self, base: Path, honor_excludes: bool) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(base):
            self.check_cancelled()
            current = Path(dirpath)
            if honor_excludes:
                kept = []
                for name in dirnames:
                    if not self.is_excluded((current / name).relative_to(self.root).as_posix()):
                        kept.append(name)
                dirnames[:] = kept
            for name in filenames:
                path = current / name
                if honor_excludes and self.is_excluded(path.relative_to(self.root).as_posix()):
                    continue
                if path.is_symlink() and not path.exists():
                    continue
                yield path

    def _read_if_text(self, path: Path) -> str | None:
        try:
            if path.stat().st_size > self.max_scan_bytes:
                logger.debug(f"Skipping large file {path}")
                return None
            with path.open("rb") as handle:
                data = handle.read()
        except OSError as e:
            logger.debug(f"Failed to read {path}: {e}")
            return None
        if b"\x00" in data[:BINARY_SNIFF_BYTES]:
            return None
        return data.decode("utf-8", errors="replace")


def package_json(files: ProjectFiles, relpath: str = "package.json") -> dict[str, Any]:
    """The parsed package.json, or an empty mapping."""
    data = files.read_json(relpath)
    return data if isinstance(data, dict) else {}


def declared_js_dependencies(files: ProjectFiles, relpath: str = "package.json") -> dict[str, str]:
    """Every dependency declared in package.json, runtime and dev alike."""
    data = package_json(files, relpath)
    merged: dict[str, str] = {}
    for section in ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies"):
        values = data.get(section)
        if isinstance(values, dict):
            merged.update({str(k): str(v) for k, v in values.items()})
    return merged


def parse_toml(text: str) -> dict[str, Any]:
    """Parse a TOML document.

    The ``toml`` decoder can fail on truncated input with errors other than
    ``TomlDecodeError`` (``IndexError`` for an unterminated array), so every
    failure is reported as ``ValueError``.

    Raises:
        ValueError: If the document is malformed
    """
    try:
        return toml.loads(text)
    except toml.TomlDecodeError:
        raise
    except Exception as e:
        raise ValueError(f"malformed TOML: {e!r}") from e
