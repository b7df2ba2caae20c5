"""
Inspections that flag suspicious entries in a rule file

Syntax errors are found by the parser; these checks look at entries
that parse fine but are probably not what the author meant.
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .constants import BROAD_PATTERNS
from .errors import Diagnostic
from .file_loader import SKIP_DIRS
from .pattern import Pattern
from .rule_set import RuleSet

WARNING = "warning"

# A backslash before a letter or digit escapes nothing useful: likely a Windows path
_SUSPICIOUS_BACKSLASH = re.compile(r'\\[A-Za-z0-9]')
_ESCAPE = re.compile(r'\\(.)')


def _warning(pattern: Pattern, message: str) -> Diagnostic:
    return Diagnostic(
        file=pattern.source_file or "",
        line=pattern.line_number,
        pattern=pattern.raw,
        message=message,
        severity=WARNING,
    )


def check_duplicates(patterns: List[Pattern]) -> List[Diagnostic]:
    """Every repeat of an entry after its first occurrence"""
    first_seen: Dict[str, Pattern] = {}
    found = []
    for pattern in patterns:
        key = pattern.raw.strip()
        original = first_seen.get(key)
        if original is None:
            first_seen[key] = pattern
            continue
        found.append(_warning(
            pattern, f"Duplicate entry, already defined on line {original.line_number}"
        ))
    return found


def check_relative(pattern: Pattern) -> Optional[Diagnostic]:
    path = _ESCAPE.sub(r'\1', pattern.raw)
    if './' in path:
        return _warning(pattern, "Relative entry: './' and '../' are not supported in rule files")
    return None


def check_backslash(pattern: Pattern) -> Optional[Diagnostic]:
    if _SUSPICIOUS_BACKSLASH.search(pattern.raw):
        return _warning(pattern, "Pattern contains backslash. Use forward slashes for paths.")
    return None


def check_broad(pattern: Pattern) -> Optional[Diagnostic]:
    if pattern.negated:
        return None
    text = ('/' if pattern.raw.lstrip().startswith('/') else '') + pattern.body
    if text in BROAD_PATTERNS:
        return _warning(pattern, "Very broad pattern - will exclude many files")
    return None


def check_unreachable_negations(patterns: List[Pattern], ignore_case: bool = False) -> List[Diagnostic]:
    """
    Negations that can never re-include anything

    A file cannot be re-included once one of its parent directories is
    excluded, so `build/` followed by `!build/keep.log` keeps ignoring
    build/keep.log.
    """
    found = []
    for index, pattern in enumerate(patterns):
        if not pattern.negated or not pattern.anchored_at_root:
            continue
        prefix = []
        for segment in pattern.segments[:-1]:
            if not segment.is_literal:
                break
            prefix.append(segment.text)
            parent = tuple(prefix)
            for earlier in reversed(patterns[:index]):
                if earlier.matches(parent, True, ignore_case):
                    if not earlier.negated:
                        found.append(_warning(
                            pattern,
                            f"Negation has no effect: parent directory '{'/'.join(parent)}' "
                            f"is excluded by line {earlier.line_number}",
                        ))
                    break
            else:
                continue
            break
    return found


def _walk(base_dir: str) -> List[Tuple[Tuple[str, ...], bool]]:
    """Every file and directory below base_dir as (relative parts, is_directory)"""
    found = []
    for dirpath, dirnames, filenames in os.walk(base_dir):
        relative = Path(dirpath).relative_to(base_dir).parts
        found.extend((relative + (name,), True) for name in dirnames)
        found.extend((relative + (name,), False) for name in filenames)
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
    return found


def check_unused(rule_set: RuleSet, ignore_case: bool = False) -> List[Diagnostic]:
    """
    Entries that match no file or directory below the rule file's directory

    Negations are skipped: they only re-include what earlier entries matched.

    Args:
        rule_set: Rule set to check against the filesystem
        ignore_case: Whether matching is case-insensitive

    Returns:
        One warning per unused entry, in line order
    """
    paths = _walk(str(rule_set.base_dir))
    found = []
    for pattern in rule_set.patterns:
        if pattern.negated:
            continue
        if not any(pattern.matches(parts, is_directory, ignore_case)
                   for parts, is_directory in paths):
            found.append(_warning(pattern, "Unused entry: matches no file or directory"))
    return found


def inspect_rule_set(rule_set: RuleSet, ignore_case: bool = False) -> List[Diagnostic]:
    """
    Run every inspection over one rule set

    Args:
        rule_set: Rule set to inspect
        ignore_case: Whether matching is case-insensitive

    Returns:
        Warnings in line order
    """
    patterns = list(rule_set.patterns)
    found = check_duplicates(patterns)
    for pattern in patterns:
        for check in (check_relative, check_backslash, check_broad):
            diagnostic = check(pattern)
            if diagnostic is not None:
                found.append(diagnostic)
    found.extend(check_unreachable_negations(patterns, ignore_case))
    return sorted(found, key=lambda d: d.line)
