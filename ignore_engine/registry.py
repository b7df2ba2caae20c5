"""
Registry of loaded rule sets and their directory hierarchy
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import threading

from .rule_set import RuleSet
from .utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    Immutable view of every registered rule set

    Readers grab the current snapshot once per query and never see a
    half-applied update.
    """
    rule_sets: Mapping[str, RuleSet] = field(default_factory=dict)
    by_dir: Mapping[PurePath, Tuple[RuleSet, ...]] = field(default_factory=dict)
    generation: int = 0

    def applicable(self, path: PurePath) -> Tuple[RuleSet, ...]:
        """
        Rule sets that can judge a path

        Args:
            path: Absolute path being queried

        Returns:
            Rule sets whose base_dir is a strict ancestor of path,
            ordered from root-most to leaf-most
        """
        if not self.by_dir:
            return ()
        result: List[RuleSet] = []
        for parent in reversed(path.parents):
            found = self.by_dir.get(parent)
            if found:
                result.extend(found)
        return tuple(result)

    def get(self, rule_set_id: str) -> Optional[RuleSet]:
        return self.rule_sets.get(rule_set_id)

    def __len__(self) -> int:
        return len(self.rule_sets)


def _ordered(rule_sets) -> Tuple[RuleSet, ...]:
    # Outer rule sets sweep before local files at the same depth
    return tuple(sorted(rule_sets, key=lambda rs: (rs.origin, rs.id)))


class RuleSetRegistry:
    """
    Tracks rule sets by id and by base directory

    Writers are serialized by a lock and publish a brand new snapshot;
    readers only ever dereference the snapshot attribute.
    """

    def __init__(self):
        """Initialize registry"""
        self._snapshot = RegistrySnapshot()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def _publish(self, rule_sets: Dict[str, RuleSet], by_dir: Dict[PurePath, Tuple[RuleSet, ...]]):
        self._snapshot = RegistrySnapshot(
            rule_sets=rule_sets,
            by_dir=by_dir,
            generation=self._snapshot.generation + 1,
        )

    def register(self, rule_set: RuleSet) -> Optional[RuleSet]:
        """
        Register or replace a rule set

        Args:
            rule_set: New rule set value

        Returns:
            The rule set it replaced, if any
        """
        with self._lock:
            current = self._snapshot
            previous = current.rule_sets.get(rule_set.id)

            rule_sets = dict(current.rule_sets)
            rule_sets[rule_set.id] = rule_set

            by_dir = dict(current.by_dir)
            if previous is not None and previous.base_dir != rule_set.base_dir:
                remaining = [rs for rs in by_dir.get(previous.base_dir, ()) if rs.id != rule_set.id]
                if remaining:
                    by_dir[previous.base_dir] = _ordered(remaining)
                else:
                    by_dir.pop(previous.base_dir, None)
            siblings = [rs for rs in by_dir.get(rule_set.base_dir, ()) if rs.id != rule_set.id]
            siblings.append(rule_set)
            by_dir[rule_set.base_dir] = _ordered(siblings)

            self._publish(rule_sets, by_dir)
            logger.debug(f"Registered rule set {rule_set.id} (version {rule_set.version}, "
                         f"{len(rule_set.patterns)} patterns)")
            return previous

    def unregister(self, rule_set_id: str) -> Optional[RuleSet]:
        """
        Remove a rule set

        Args:
            rule_set_id: Id of the rule set

        Returns:
            The removed rule set, or None if it was not registered
        """
        with self._lock:
            current = self._snapshot
            previous = current.rule_sets.get(rule_set_id)
            if previous is None:
                return None

            rule_sets = dict(current.rule_sets)
            del rule_sets[rule_set_id]

            by_dir = dict(current.by_dir)
            remaining = [rs for rs in by_dir.get(previous.base_dir, ()) if rs.id != rule_set_id]
            if remaining:
                by_dir[previous.base_dir] = _ordered(remaining)
            else:
                by_dir.pop(previous.base_dir, None)

            self._publish(rule_sets, by_dir)
            logger.debug(f"Unregistered rule set: {rule_set_id}")
            return previous

    def replace_all(self, rule_sets: Iterable[RuleSet]) -> Mapping[str, RuleSet]:
        """
        Swap the whole registry in one snapshot

        Args:
            rule_sets: Every rule set that should be registered afterwards

        Returns:
            The rule sets that were registered before, by id
        """
        with self._lock:
            previous = self._snapshot.rule_sets
            by_id = {rs.id: rs for rs in rule_sets}
            grouped: Dict[PurePath, List[RuleSet]] = {}
            for rule_set in by_id.values():
                grouped.setdefault(rule_set.base_dir, []).append(rule_set)
            self._publish(by_id, {d: _ordered(group) for d, group in grouped.items()})
            logger.debug(f"Replaced {len(previous)} rule sets with {len(by_id)}")
            return previous

    def get(self, rule_set_id: str) -> Optional[RuleSet]:
        return self._snapshot.get(rule_set_id)

    def get_all(self) -> List[RuleSet]:
        """All registered rule sets, root-most first"""
        snapshot = self._snapshot
        return sorted(snapshot.rule_sets.values(),
                      key=lambda rs: (len(rs.base_dir.parts), rs.origin, rs.id))

    def get_stats(self) -> Dict[str, int]:
        """
        Get registry statistics

        Returns:
            Dictionary with registry stats
        """
        snapshot = self._snapshot
        return {
            'total_rule_sets': len(snapshot.rule_sets),
            'total_patterns': sum(len(rs.patterns) for rs in snapshot.rule_sets.values()),
            'directories_with_rules': len(snapshot.by_dir),
            'rule_sets_with_errors': sum(1 for rs in snapshot.rule_sets.values() if rs.errors),
            'generation': snapshot.generation,
        }

    def clear(self):
        """Clear the registry"""
        with self._lock:
            self._publish({}, {})
