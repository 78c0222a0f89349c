"""Whitelist used to suppress raw pattern matches before they become findings."""

import re
from collections.abc import Iterable


class Whitelist:
    """A set of case-insensitive regular expressions.

    A raw match whose text satisfies any entry (``re.search``) is discarded.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(patterns)
        self._compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def is_whitelisted(self, text: str) -> bool:
        """Check whether the matched text is covered by any entry."""
        return any(regex.search(text) for regex in self._compiled)

    def filter(self, matches: Iterable[str]) -> list[str]:
        """Return only the matches that are not whitelisted."""
        return [m for m in matches if not self.is_whitelisted(m)]

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"Whitelist({len(self.patterns)} patterns)"
