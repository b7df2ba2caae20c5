"""
Resolution of ignore verdicts across nested rule sets
"""

import itertools
import os
from pathlib import PurePath
from typing import Optional, Tuple, Union

from .cache import VerdictCache, Versions
from .registry import RegistrySnapshot, RuleSetRegistry
from .rule_set import NOT_IGNORED, RuleSet, Verdict
from .utils import get_logger

logger = get_logger(__name__)


def normalize_path(path: Union[str, PurePath]) -> PurePath:
    """Collapse '.', '..' and duplicate separators without touching the disk"""
    return PurePath(os.path.normpath(os.fspath(path)))


def versions_of(rule_sets: Tuple[RuleSet, ...]) -> Versions:
    return tuple((rs.id, rs.version) for rs in rule_sets)


class RuleSetResolver:
    """
    Combines every applicable rule set into one verdict

    Precedence:
    - inside one rule set the last matching pattern wins
    - across rule sets a deeper rule file overrides a shallower one
    - an ignored ancestor directory decides for its whole subtree, so
      patterns below it are never evaluated
    """

    def __init__(self, registry: RuleSetRegistry, cache: Optional[VerdictCache] = None,
                 ignore_case: bool = False):
        """
        Initialize resolver

        Args:
            registry: Source of rule set snapshots
            cache: Verdict cache (None disables caching)
            ignore_case: Match case-insensitively
        """
        self._registry = registry
        self._cache = cache
        self.ignore_case = ignore_case

    def resolve(self, absolute_path: Union[str, PurePath], is_directory: bool = False,
                use_cache: bool = True) -> Verdict:
        """
        Decide whether a path is ignored

        Args:
            absolute_path: Absolute path to check
            is_directory: Whether the path names a directory
            use_cache: Consult and fill the verdict cache

        Returns:
            Verdict with the deciding pattern, or a not-ignored verdict
            when no rule set applies to the path
        """
        path = normalize_path(absolute_path)
        snapshot = self._registry.snapshot
        return self._resolve(snapshot, path, is_directory, use_cache and self._cache is not None)

    def applicable_rule_sets(self, absolute_path: Union[str, PurePath]) -> Tuple[RuleSet, ...]:
        """Rule sets that would be consulted for a path, root-most first"""
        return self._registry.snapshot.applicable(normalize_path(absolute_path))

    def _resolve(self, snapshot: RegistrySnapshot, path: PurePath, is_directory: bool,
                 use_cache: bool) -> Verdict:
        rule_sets = snapshot.applicable(path)
        if not rule_sets:
            logger.trace(f"No rule set applies to {path}")
            return NOT_IGNORED

        key = (str(path), is_directory)
        versions = versions_of(rule_sets)
        if use_cache:
            cached = self._cache.get(key, versions)
            if cached is not None:
                return cached

        verdict = self._compute(path, is_directory, rule_sets, use_cache)

        if use_cache:
            self._cache.put(key, verdict, versions)
        logger.trace(f"Resolved {path} (dir={is_directory}): {verdict.ignored}")
        return verdict

    def _compute(self, path: PurePath, is_directory: bool,
                 rule_sets: Tuple[RuleSet, ...], use_cache: bool) -> Verdict:
        top = rule_sets[0].base_dir
        ancestors = list(itertools.takewhile(lambda p: p != top, path.parents))

        # Root-most first: the shallowest ignored directory decides
        consulted = 0
        for ancestor in reversed(ancestors):
            depth = len(ancestor.parts)
            while consulted < len(rule_sets) and len(rule_sets[consulted].base_dir.parts) < depth:
                consulted += 1
            verdict = self._directory_verdict(ancestor, rule_sets[:consulted], use_cache)
            if verdict.ignored:
                return verdict
        return self._sweep(path, is_directory, rule_sets)

    def _directory_verdict(self, directory: PurePath, rule_sets: Tuple[RuleSet, ...],
                           use_cache: bool) -> Verdict:
        """Verdict for a directory whose own ancestors are not ignored"""
        key = (str(directory), True)
        versions = versions_of(rule_sets)
        if use_cache:
            cached = self._cache.get(key, versions)
            if cached is not None:
                return cached

        verdict = self._sweep(directory, True, rule_sets)

        if use_cache:
            self._cache.put(key, verdict, versions)
        return verdict

    def _sweep(self, path: PurePath, is_directory: bool,
               rule_sets: Tuple[RuleSet, ...]) -> Verdict:
        # The deepest rule set with any match decides
        for rule_set in reversed(rule_sets):
            relative = path.relative_to(rule_set.base_dir).parts
            verdict = rule_set.evaluate(relative, is_directory, self.ignore_case)
            if verdict is not None:
                return verdict
        return NOT_IGNORED
