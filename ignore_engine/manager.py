"""
Main ignore manager API: queries, change notifications and diagnostics
"""

import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path, PurePath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .cache import VerdictCache
from .config import EngineConfig
from .constants import (
    DEFAULT_EXCLUSIONS, DEFAULTS_SOURCE, ORIGIN_DEFAULTS, ORIGIN_LOCAL, ORIGIN_OUTER,
)
from .errors import Diagnostic, PathOutsideScope, RuleFileUnreadable
from .file_loader import FilesystemRuleFileSource, RuleFileSource
from .inspections import check_unused as find_unused, inspect_rule_set
from .pattern import Pattern
from .registry import RuleSetRegistry
from .resolver import RuleSetResolver, normalize_path
from .rule_set import RuleSet, Verdict, content_digest
from .utils import get_logger, log_with_context

logger = get_logger(__name__)

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class IgnoreReason:
    """Where an ignore decision came from"""
    file: Optional[str]
    line: int
    pattern: str


@dataclass(frozen=True)
class IgnoreResult:
    """Answer to an is_ignored query"""
    ignored: bool
    reason: Optional[IgnoreReason] = None

    def __bool__(self) -> bool:
        return self.ignored

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> "IgnoreResult":
        pattern = verdict.matched_pattern
        if pattern is None:
            return cls(ignored=verdict.ignored)
        return cls(
            ignored=verdict.ignored,
            reason=IgnoreReason(file=pattern.source_file, line=pattern.line_number,
                                pattern=pattern.raw),
        )


class IgnoreManager:
    """
    Main API for gitignore-style rule evaluation over one workspace

    Queries never take a lock: they read the current registry snapshot.
    Change notifications rebuild one rule set, publish it, and invalidate
    only the cached verdicts that depended on it.
    """

    def __init__(self,
                 root_path: PathLike,
                 config: Optional[EngineConfig] = None,
                 source: Optional[RuleFileSource] = None,
                 auto_discover: bool = True,
                 **overrides):
        """
        Initialize the ignore manager

        Args:
            root_path: Root directory of the workspace
            config: Engine configuration (defaults to EngineConfig())
            source: Where rule files come from (defaults to the filesystem)
            auto_discover: Discover and load rule files on init
            **overrides: EngineConfig fields to override, e.g. use_defaults=False
        """
        self.root_path = Path(os.path.abspath(os.fspath(root_path)))
        if config is None:
            config = EngineConfig(**overrides)
        elif overrides:
            config = replace(config, **overrides)
        self.config = config

        self._source = source or FilesystemRuleFileSource(
            self.root_path,
            rule_filenames=config.rule_filenames,
            max_file_size=config.max_rule_file_size,
        )
        self._cache = VerdictCache(config.cache_size)
        self._registry = RuleSetRegistry()
        self._resolver = RuleSetResolver(self._registry, self._cache,
                                         ignore_case=config.ignore_case)

        self._outer_files = [self._outer_path(p) for p in config.outer_files]

        # Serializes writers only; readers never take it
        self._write_lock = threading.RLock()
        self._unsubscribe = self._source.subscribe(self.notify_file_changed)

        if auto_discover:
            self._load_rule_files()

    @property
    def ignore_filenames(self):
        return self.config.rule_filenames

    @property
    def default_patterns(self) -> List[str]:
        patterns = list(DEFAULT_EXCLUSIONS) if self.config.use_defaults else []
        patterns.extend(self.config.default_patterns)
        return patterns

    # Queries

    def resolve(self, path: PathLike, is_directory: bool = False) -> Verdict:
        """
        Resolve a path to a verdict

        Args:
            path: Absolute path, or a path relative to the root
            is_directory: Whether the path names a directory

        Returns:
            Verdict with the deciding pattern
        """
        return self._resolver.resolve(self._absolute(path), is_directory)

    def is_ignored(self, path: PathLike, is_directory: bool = False) -> IgnoreResult:
        """
        Check a path and explain the decision

        Args:
            path: Absolute path, or a path relative to the root
            is_directory: Whether the path names a directory

        Returns:
            IgnoreResult with the file, line and pattern that decided
        """
        verdict = self.resolve(path, is_directory)
        logger.trace(f"Ignore check for {path}: {verdict.ignored} "
                     f"(matched: {verdict.matched_pattern})")
        return IgnoreResult.from_verdict(verdict)

    def should_ignore(self, path: PathLike, is_directory: Optional[bool] = None) -> bool:
        """
        Check if a path should be ignored

        Args:
            path: Path to check (relative or absolute)
            is_directory: Whether the path is a directory; looked up on disk when None

        Returns:
            True if path should be ignored, False otherwise
        """
        absolute = self._absolute(path)
        if is_directory is None:
            is_directory = os.path.isdir(absolute)
        return self._resolver.resolve(absolute, is_directory).ignored

    def filter_paths(self, paths: Iterable[PathLike], is_directory: bool = False) -> List[PathLike]:
        """Keep only the paths that are not ignored, preserving order"""
        return [p for p in paths if not self.resolve(p, is_directory).ignored]

    def iter_files(self, start: Optional[PathLike] = None) -> Iterator[Path]:
        """
        Walk the filesystem yielding files that are not ignored

        Ignored directories are never descended into.

        Args:
            start: Directory to walk (defaults to the root)

        Yields:
            Absolute paths of non-ignored files
        """
        start_path = Path(self._absolute(start)) if start is not None else self.root_path
        for dirpath, dirnames, filenames in os.walk(start_path):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if not self._resolver.resolve(current / d, True).ignored
            )
            for name in sorted(filenames):
                file_path = current / name
                if not self._resolver.resolve(file_path, False).ignored:
                    yield file_path

    def get_patterns_for_path(self, path: PathLike) -> List[Pattern]:
        """
        Get all patterns that could affect a path

        Returns:
            Patterns in precedence order (later entries win)
        """
        patterns: List[Pattern] = []
        for rule_set in self._resolver.applicable_rule_sets(self._absolute(path)):
            patterns.extend(rule_set.patterns)
        return patterns

    def relative_path(self, path: PathLike) -> str:
        """
        Path relative to the root, with '/' separators

        Raises:
            PathOutsideScope: If the path is not under the root
        """
        absolute = self._absolute(path)
        try:
            return absolute.relative_to(self.root_path).as_posix()
        except ValueError:
            raise PathOutsideScope(f"{path} is not under {self.root_path}")

    def is_rule_file(self, path: PathLike) -> bool:
        """Whether a path is a rule file this manager tracks"""
        rule_set_id = str(self._absolute(path))
        return rule_set_id in self._outer_files or self._source.is_rule_file(rule_set_id)

    # Change notifications

    def on_rule_file_changed(self, path: PathLike, new_contents: str) -> RuleSet:
        """
        Re-parse a rule file from new contents and swap its rule set

        Submitting the contents already loaded changes nothing.

        Args:
            path: Path of the rule file
            new_contents: Full text of the file

        Returns:
            The rule set now in effect for the file
        """
        rule_set_id = str(self._absolute(path))
        with self._write_lock:
            current = self._registry.get(rule_set_id)
            if current is not None and current.digest == content_digest(new_contents):
                logger.debug(f"Rule file unchanged: {rule_set_id}")
                return current

            rule_set = self._parse_rule_file(rule_set_id, new_contents)
            self._publish(rule_set)
            return rule_set

    def on_rule_file_removed(self, path: PathLike) -> bool:
        """
        Drop a rule file's rule set and its cached verdicts

        Returns:
            True if a rule set was removed
        """
        rule_set_id = str(self._absolute(path))
        with self._write_lock:
            removed = self._registry.unregister(rule_set_id)
            dropped = self._cache.invalidate(rule_set_id)
        if removed is not None:
            log_with_context(logger, logging.INFO, f"Removed rule file: {rule_set_id}",
                             rule_file=rule_set_id, invalidated=dropped)
        return removed is not None

    def notify_file_changed(self, file_path: PathLike):
        """
        Handle external notification that a rule file changed on disk

        The file is re-read through the rule file source; a missing file is
        treated as removed and an unreadable one contributes no patterns.

        Args:
            file_path: Path to the changed rule file
        """
        rule_set_id = str(self._absolute(file_path))
        if not self.is_rule_file(rule_set_id):
            logger.debug(f"Not a rule file: {rule_set_id}")
            return

        logger.info(f"Received change notification for: {rule_set_id}")
        with self._write_lock:
            if not self._source.exists(rule_set_id):
                self.on_rule_file_removed(rule_set_id)
                return
            try:
                contents = self._source.read(rule_set_id)
            except RuleFileUnreadable as e:
                self._publish_unreadable(rule_set_id, e)
                return
            self.on_rule_file_changed(rule_set_id, contents)

    def notify_directory_changed(self, directory: PathLike) -> List[str]:
        """
        Handle a directory that was created, deleted or moved

        Rule files loaded from below the directory are re-checked, so the ones
        that went away are removed, and rule files the source now has below it
        are loaded.

        Args:
            directory: Path of the directory

        Returns:
            Ids of the rule files that were re-checked
        """
        base = self._absolute(directory)
        with self._write_lock:
            loaded = [rs.id for rs in self._registry.get_all()
                      if rs.origin != ORIGIN_DEFAULTS and base in PurePath(rs.id).parents]
            present: List[str] = []
            if base == PurePath(self.root_path) or PurePath(self.root_path) in base.parents:
                present = [str(normalize_path(p)) for p in self._source.discover(str(base))]

            rule_set_ids = list(dict.fromkeys(loaded + present))
            logger.info(f"Directory {base} changed: re-checking {len(rule_set_ids)} rule files")
            for rule_set_id in rule_set_ids:
                self.notify_file_changed(rule_set_id)
        return rule_set_ids

    def reload_all(self):
        """Reload every rule file from the source"""
        with self._write_lock:
            logger.info("Reloading all rule files")
            self._load_rule_files()

    # Reporting

    def diagnostics(self, include_warnings: bool = True,
                    check_unused: bool = False) -> List[Diagnostic]:
        """
        Problems found in the loaded rule files

        Args:
            include_warnings: Also run the rule file inspections
            check_unused: Also walk the filesystem for entries that match nothing
                (needs include_warnings)

        Returns:
            Errors (and warnings) ordered by file and line
        """
        found: List[Diagnostic] = []
        for rule_set in self._registry.get_all():
            found.extend(rule_set.errors)
            if include_warnings:
                found.extend(inspect_rule_set(rule_set, self.config.ignore_case))
                if check_unused and rule_set.origin != ORIGIN_DEFAULTS:
                    found.extend(find_unused(rule_set, self.config.ignore_case))
        return sorted(found, key=lambda d: (d.file, d.line))

    def get_ignore_files(self) -> List[str]:
        """
        Get list of all loaded rule files (defaults excluded)
        """
        return [rs.id for rs in self._registry.get_all() if rs.origin != ORIGIN_DEFAULTS]

    def get_rule_set(self, path: PathLike) -> Optional[RuleSet]:
        return self._registry.get(str(self._absolute(path)))

    def get_stats(self) -> Dict[str, Any]:
        """
        Get comprehensive statistics
        """
        return {
            'root_path': str(self.root_path),
            'rule_filenames': list(self.config.rule_filenames),
            'default_patterns': len(self.default_patterns),
            'registry': self._registry.get_stats(),
            'cache': self._cache.get_stats(),
        }

    def close(self):
        """Stop listening to the rule file source"""
        self._unsubscribe()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Internals

    def _absolute(self, path: PathLike) -> PurePath:
        path = PurePath(os.fspath(path))
        if not path.is_absolute():
            path = self.root_path / path
        return normalize_path(path)

    def _outer_path(self, path: str) -> str:
        expanded = os.path.expanduser(path)
        if not os.path.isabs(expanded):
            expanded = os.path.join(self.root_path, expanded)
        return str(normalize_path(expanded))

    def _origin_for(self, rule_set_id: str) -> int:
        return ORIGIN_OUTER if rule_set_id in self._outer_files else ORIGIN_LOCAL

    def _base_dir_for(self, rule_set_id: str) -> PurePath:
        if rule_set_id in self._outer_files:
            return PurePath(self.root_path)
        return PurePath(rule_set_id).parent

    def _publish(self, rule_set: RuleSet):
        self._registry.register(rule_set)
        dropped = self._cache.invalidate(rule_set.id)
        for error in rule_set.errors:
            logger.error(f"{error.file}:{error.line}: {error.message}")
        log_with_context(
            logger, logging.INFO,
            f"Loaded rule file {rule_set.id} ({len(rule_set.patterns)} patterns)",
            rule_file=rule_set.id, version=rule_set.version, invalidated=dropped,
        )

    def _publish_unreadable(self, rule_set_id: str, error: RuleFileUnreadable):
        logger.warning(str(error))
        self._publish(self._unreadable_rule_set(rule_set_id, error))

    def _unreadable_rule_set(self, rule_set_id: str, error: RuleFileUnreadable) -> RuleSet:
        return RuleSet.empty(
            rule_set_id,
            self._base_dir_for(rule_set_id),
            errors=(Diagnostic.from_unreadable(error),),
            origin=self._origin_for(rule_set_id),
        )

    def _parse_rule_file(self, rule_set_id: str, contents: str) -> RuleSet:
        return RuleSet.from_text(
            rule_set_id,
            self._base_dir_for(rule_set_id),
            contents,
            origin=self._origin_for(rule_set_id),
            max_patterns=self.config.max_patterns_per_file,
        )

    def _read_rule_set(self, rule_set_id: str) -> RuleSet:
        """Rule set for a file as the source has it now; unchanged files keep their version"""
        try:
            contents = self._source.read(rule_set_id)
        except RuleFileUnreadable as e:
            logger.warning(str(e))
            return self._unreadable_rule_set(rule_set_id, e)
        current = self._registry.get(rule_set_id)
        if current is not None and current.digest == content_digest(contents):
            return current
        return self._parse_rule_file(rule_set_id, contents)

    def _load_rule_files(self):
        """Load defaults, global rule files and every rule file under the root"""
        logger.info(f"Discovering rule files under: {self.root_path}")

        rule_sets: List[RuleSet] = []
        defaults_text = '\n'.join(self.default_patterns)
        defaults = self._registry.get(DEFAULTS_SOURCE)
        if defaults is None or defaults.digest != content_digest(defaults_text):
            defaults = RuleSet.from_text(DEFAULTS_SOURCE, PurePath(self.root_path), defaults_text,
                                         origin=ORIGIN_DEFAULTS)
        if defaults.patterns:
            rule_sets.append(defaults)

        for outer in self._outer_files:
            if self._source.exists(outer):
                rule_sets.append(self._read_rule_set(outer))

        rule_files = self._source.discover()
        logger.info(f"Found {len(rule_files)} rule files")
        for file_path in rule_files:
            rule_sets.append(self._read_rule_set(str(normalize_path(file_path))))

        # Readers switch from the old rule sets to the new ones in one step
        previous = self._registry.replace_all(rule_sets)
        current = self._registry.snapshot.rule_sets
        dropped = sum(
            self._cache.invalidate(rule_set_id)
            for rule_set_id, old in previous.items()
            if current.get(rule_set_id) is not old
        )
        for rule_set in rule_sets:
            if previous.get(rule_set.id) is not rule_set:
                for error in rule_set.errors:
                    logger.error(f"{error.file}:{error.line}: {error.message}")

        stats = self._registry.get_stats()
        log_with_context(
            logger, logging.INFO,
            f"Loaded {stats['total_rule_sets']} rule sets with "
            f"{stats['total_patterns']} total patterns",
            rule_sets=stats['total_rule_sets'], invalidated=dropped,
        )
