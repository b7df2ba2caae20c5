"""
Rule sets: the ordered patterns of one rule file, scoped to its directory
"""

import hashlib
import itertools
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional, Tuple, Union

from .constants import ORIGIN_LOCAL, MAX_PATTERNS_PER_FILE
from .errors import Diagnostic
from .pattern import Pattern, parse_lines

# Process-wide so a removed and re-added rule file never reuses a version
_versions = itertools.count(1)


def next_version() -> int:
    return next(_versions)


def content_digest(contents: str) -> str:
    return hashlib.sha256(contents.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class Verdict:
    """Ignored/not-ignored decision with the deciding pattern"""
    ignored: bool
    matched_pattern: Optional[Pattern] = None


NOT_IGNORED = Verdict(ignored=False)


@dataclass(frozen=True)
class RuleSet:
    """
    All patterns from one rule file plus the directory they apply to

    Instances are never mutated; updates build a new RuleSet with a new
    version and the owner swaps the reference.
    """
    id: str
    base_dir: PurePath
    patterns: Tuple[Pattern, ...] = ()
    version: int = field(default_factory=next_version)
    origin: int = ORIGIN_LOCAL
    errors: Tuple[Diagnostic, ...] = ()
    digest: str = ""

    @classmethod
    def from_text(cls, rule_set_id: str, base_dir: Union[str, PurePath], contents: str,
                  origin: int = ORIGIN_LOCAL,
                  max_patterns: int = MAX_PATTERNS_PER_FILE) -> "RuleSet":
        """
        Parse rule file content into a rule set

        Malformed lines are skipped and kept as diagnostics.
        """
        patterns, syntax_errors = parse_lines(contents, rule_set_id)
        errors = [Diagnostic.from_syntax_error(e) for e in syntax_errors]
        if len(patterns) > max_patterns:
            errors.append(Diagnostic(
                file=rule_set_id,
                line=0,
                pattern="",
                message=f"Too many patterns: {len(patterns)} (max: {max_patterns})",
            ))
            patterns = patterns[:max_patterns]
        return cls(
            id=rule_set_id,
            base_dir=PurePath(base_dir),
            patterns=tuple(patterns),
            origin=origin,
            errors=tuple(errors),
            digest=content_digest(contents),
        )

    @classmethod
    def empty(cls, rule_set_id: str, base_dir: Union[str, PurePath],
              errors: Tuple[Diagnostic, ...] = (), origin: int = ORIGIN_LOCAL) -> "RuleSet":
        """Rule set for a file that contributes nothing (e.g. unreadable)"""
        return cls(id=rule_set_id, base_dir=PurePath(base_dir), origin=origin, errors=errors)

    def evaluate(self, relative_path: Union[str, Tuple[str, ...]], is_directory: bool = False,
                 ignore_case: bool = False) -> Optional[Verdict]:
        """
        Evaluate a path relative to base_dir

        Args:
            relative_path: "a/b" string or tuple of components
            is_directory: Whether the path names a directory
            ignore_case: Compare case-insensitively

        Returns:
            Verdict of the last matching pattern, or None if nothing matches
        """
        if isinstance(relative_path, str):
            relative_path = tuple(p for p in relative_path.split('/') if p)
        # Scanning backwards finds the last match in file order first
        for pattern in reversed(self.patterns):
            if pattern.matches(relative_path, is_directory, ignore_case):
                return Verdict(ignored=not pattern.negated, matched_pattern=pattern)
        return None

    def __len__(self) -> int:
        return len(self.patterns)
