"""
Compiled glob matching for parsed patterns

Matching never uses a backtracking regex engine. Segments are walked as a
small NFA over path components, and each component is matched with the
single-star greedy algorithm, so every check is O(len(path) * len(pattern)).
"""

from typing import Callable, List, Optional, Sequence, Tuple

from .pattern import (
    CHAR_CLASSES, AnyChar, CharClass, Literal, Pattern, Segment, Star,
)

ComponentMatcher = Callable[[str], bool]

_STAR = object()
_ANY = object()


def _any_component(part: str) -> bool:
    return True


def _class_matches(char_class: CharClass, c: str, ignore_case: bool) -> bool:
    candidates = (c, c.upper()) if ignore_case else (c,)
    hit = False
    for candidate in candidates:
        if any(low <= candidate <= high for low, high in char_class.ranges):
            hit = True
            break
        if any(CHAR_CLASSES[name](candidate) for name in char_class.classes):
            hit = True
            break
    return hit != char_class.negated


def _to_units(segment: Segment, ignore_case: bool) -> List[object]:
    """Flatten tokens into one-character units plus star markers"""
    units: List[object] = []
    for token in segment.tokens:
        if isinstance(token, Literal):
            units.extend(token.text.lower() if ignore_case else token.text)
        elif isinstance(token, Star):
            units.append(_STAR)
        elif isinstance(token, AnyChar):
            units.append(_ANY)
        else:
            units.append(token)
    return units


def match_units(units: Sequence[object], text: str, ignore_case: bool = False) -> bool:
    """
    Match one path component against flattened glob units

    A star retries from the most recent star only, which keeps the walk
    linear in practice and quadratic in the worst case.
    """
    p = i = 0
    star_p = -1
    star_i = 0
    n_units = len(units)
    while i < len(text):
        if p < n_units and units[p] is _STAR:
            star_p = p
            star_i = i
            p += 1
            continue
        if p < n_units:
            unit = units[p]
            c = text[i]
            if unit is _ANY:
                ok = True
            elif isinstance(unit, str):
                ok = unit == c
            else:
                ok = _class_matches(unit, c, ignore_case)
            if ok:
                p += 1
                i += 1
                continue
        if star_p != -1:
            p = star_p + 1
            star_i += 1
            i = star_i
            continue
        return False

    while p < n_units and units[p] is _STAR:
        p += 1
    return p == n_units


def compile_segment(segment: Segment, ignore_case: bool = False) -> ComponentMatcher:
    """Build a predicate for one non-globstar segment, with fast paths"""
    tokens = segment.tokens

    if segment.is_literal:
        text = ''.join(t.text for t in tokens)
        if ignore_case:
            text = text.lower()
        return lambda part: part == text

    if len(tokens) == 1 and isinstance(tokens[0], Star):
        return lambda part: True

    if len(tokens) == 2 and isinstance(tokens[0], Star) and isinstance(tokens[1], Literal):
        suffix = tokens[1].text.lower() if ignore_case else tokens[1].text
        return lambda part: part.endswith(suffix)

    if len(tokens) == 2 and isinstance(tokens[0], Literal) and isinstance(tokens[1], Star):
        prefix = tokens[0].text.lower() if ignore_case else tokens[0].text
        return lambda part: part.startswith(prefix)

    units = _to_units(segment, ignore_case)
    return lambda part: match_units(units, part, ignore_case)


class CompiledPattern:
    """
    Matcher for one Pattern

    Steps are component predicates; None marks a globstar step that
    consumes zero or more components.
    """

    __slots__ = ('pattern', 'ignore_case', 'directory_only', '_steps', '_suffix')

    def __init__(self, pattern: Pattern, ignore_case: bool = False):
        self.pattern = pattern
        self.ignore_case = ignore_case
        self.directory_only = pattern.directory_only

        steps: List[Optional[ComponentMatcher]] = []
        if not pattern.anchored_at_root and not pattern.segments[0].is_globstar:
            steps.append(None)
        last = len(pattern.segments) - 1
        for index, segment in enumerate(pattern.segments):
            if segment.is_globstar:
                if index == last:
                    # Trailing "/**" matches inside the directory, not the directory itself
                    steps.append(_any_component)
                steps.append(None)
            else:
                steps.append(compile_segment(segment, ignore_case))
        self._steps: Tuple[Optional[ComponentMatcher], ...] = tuple(steps)

        # A leading globstar before fixed steps only constrains the last components
        self._suffix: Optional[Tuple[ComponentMatcher, ...]] = None
        if len(steps) > 1 and steps[0] is None and None not in steps[1:]:
            self._suffix = tuple(steps[1:])

    def _closure(self, states: set) -> set:
        steps = self._steps
        pending = list(states)
        while pending:
            state = pending.pop()
            if state < len(steps) and steps[state] is None and state + 1 not in states:
                states.add(state + 1)
                pending.append(state + 1)
        return states

    def matches(self, parts: Tuple[str, ...], is_directory: bool = False) -> bool:
        """
        Check path components relative to the rule file's directory

        Args:
            parts: Path components, never containing '/'
            is_directory: Whether the path names a directory

        Returns:
            True if the whole path matches
        """
        if self.directory_only and not is_directory:
            return False
        if not parts:
            return False
        if self._suffix is not None:
            return self._matches_suffix(parts)
        if self.ignore_case:
            parts = tuple(part.lower() for part in parts)

        steps = self._steps
        final = len(steps)
        current = self._closure({0})
        for part in parts:
            advanced = set()
            for state in current:
                if state == final:
                    continue
                step = steps[state]
                if step is None:
                    advanced.add(state)
                elif step(part):
                    advanced.add(state + 1)
            if not advanced:
                return False
            current = self._closure(advanced)
        return final in current

    def _matches_suffix(self, parts: Tuple[str, ...]) -> bool:
        count = len(self._suffix)
        if len(parts) < count:
            return False
        tail = parts[-count:]
        if self.ignore_case:
            tail = tuple(part.lower() for part in tail)
        return all(step(part) for step, part in zip(self._suffix, tail))

    def __repr__(self) -> str:
        return f"CompiledPattern({self.pattern.raw!r}, ignore_case={self.ignore_case})"


def compile_pattern(pattern: Pattern, ignore_case: bool = False) -> CompiledPattern:
    """Compile a parsed pattern into a reusable matcher"""
    return CompiledPattern(pattern, ignore_case=ignore_case)
