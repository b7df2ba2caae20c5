"""
Parser for gitignore-style rule lines

One raw line becomes at most one immutable Pattern. Blank lines and
comments produce nothing; malformed lines raise PatternSyntaxError.
"""

import string
from dataclasses import dataclass
from functools import cached_property
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import PatternSyntaxError


# POSIX bracket expression classes, e.g. [[:digit:]]
CHAR_CLASSES: Dict[str, Callable[[str], bool]] = {
    'alnum': str.isalnum,
    'alpha': str.isalpha,
    'blank': lambda c: c in ' \t',
    'cntrl': lambda c: ord(c) < 32 or ord(c) == 127,
    'digit': lambda c: c in string.digits,
    'graph': lambda c: c.isprintable() and not c.isspace(),
    'lower': str.islower,
    'print': str.isprintable,
    'punct': lambda c: c in string.punctuation,
    'space': str.isspace,
    'upper': str.isupper,
    'xdigit': lambda c: c in string.hexdigits,
}

GLOBSTAR = '**'


@dataclass(frozen=True)
class Literal:
    """Exact text inside one path component"""
    text: str


@dataclass(frozen=True)
class AnyChar:
    """`?`: exactly one character"""


@dataclass(frozen=True)
class Star:
    """`*`: any run of characters inside one path component"""


@dataclass(frozen=True)
class CharClass:
    """`[...]` bracket expression"""
    ranges: Tuple[Tuple[str, str], ...]
    classes: Tuple[str, ...] = ()
    negated: bool = False


Token = Union[Literal, AnyChar, Star, CharClass]


@dataclass(frozen=True)
class Segment:
    """One `/`-separated piece of a pattern"""
    text: str
    tokens: Tuple[Token, ...] = ()

    @property
    def is_globstar(self) -> bool:
        return self.text == GLOBSTAR

    @property
    def is_literal(self) -> bool:
        return not self.is_globstar and all(isinstance(t, Literal) for t in self.tokens)


@dataclass(frozen=True)
class Pattern:
    """A parsed ignore rule. Immutable once parsed."""
    raw: str
    segments: Tuple[Segment, ...]
    anchored_at_root: bool = False
    directory_only: bool = False
    negated: bool = False
    source_file: Optional[str] = None
    line_number: int = 0

    @cached_property
    def compiled(self):
        """Case-sensitive matcher, built on first use"""
        # Import here to avoid circular dependency
        from .matcher import compile_pattern
        return compile_pattern(self)

    @cached_property
    def compiled_ignore_case(self):
        """Case-insensitive matcher, built on first use"""
        from .matcher import compile_pattern
        return compile_pattern(self, ignore_case=True)

    def matches(self, relative_path: Union[str, Tuple[str, ...]],
                is_directory: bool = False, ignore_case: bool = False) -> bool:
        """
        Check a path relative to the rule file's directory

        Args:
            relative_path: "a/b/c" string or a tuple of components
            is_directory: Whether the path names a directory
            ignore_case: Compare case-insensitively

        Returns:
            True if the pattern matches the path
        """
        if isinstance(relative_path, str):
            parts = tuple(p for p in relative_path.split('/') if p)
        else:
            parts = tuple(relative_path)
        matcher = self.compiled_ignore_case if ignore_case else self.compiled
        return matcher.matches(parts, is_directory)

    @property
    def body(self) -> str:
        """Pattern text without negation, anchoring and trailing slash"""
        return '/'.join(segment.text for segment in self.segments)

    def __str__(self) -> str:
        return self.raw


def _escaped(text: str, index: int) -> bool:
    """Whether the character at index is preceded by an odd run of backslashes"""
    count = 0
    index -= 1
    while index >= 0 and text[index] == '\\':
        count += 1
        index -= 1
    return count % 2 == 1


def _strip_trailing_whitespace(text: str) -> str:
    end = len(text)
    while end > 0 and text[end - 1] in ' \t':
        if _escaped(text, end - 1):
            break
        end -= 1
    return text[:end]


def _parse_char_class(segment: str, start: int, error: Callable[[str], PatternSyntaxError]
                      ) -> Tuple[CharClass, int]:
    """Parse a bracket expression starting at segment[start] == '['"""
    n = len(segment)
    j = start + 1
    negated = False
    if j < n and segment[j] in '!^':
        negated = True
        j += 1

    ranges: List[Tuple[str, str]] = []
    classes: List[str] = []
    first = True
    while True:
        if j >= n:
            raise error("unterminated character class")
        c = segment[j]
        if c == ']' and not first:
            j += 1
            break
        first = False

        if segment.startswith('[:', j):
            end = segment.find(':]', j + 2)
            if end != -1:
                name = segment[j + 2:end]
                if name not in CHAR_CLASSES:
                    raise error(f"unknown character class [:{name}:]")
                classes.append(name)
                j = end + 2
                continue

        if c == '\\':
            j += 1
            if j >= n:
                raise error("unterminated character class")
            c = segment[j]

        if j + 2 < n and segment[j + 1] == '-' and segment[j + 2] != ']':
            k = j + 2
            high = segment[k]
            if high == '\\':
                k += 1
                if k >= n:
                    raise error("unterminated character class")
                high = segment[k]
            if high < c:
                raise error(f"invalid character range {c}-{high}")
            ranges.append((c, high))
            j = k + 1
        else:
            ranges.append((c, c))
            j += 1

    return CharClass(tuple(ranges), tuple(classes), negated), j


def _tokenize(segment: str, error: Callable[[str], PatternSyntaxError]) -> Tuple[Token, ...]:
    tokens: List[Token] = []
    buf: List[str] = []

    def flush():
        if buf:
            tokens.append(Literal(''.join(buf)))
            buf.clear()

    i = 0
    n = len(segment)
    while i < n:
        c = segment[i]
        if c == '\\':
            if i + 1 >= n:
                raise error("trailing backslash escapes nothing")
            buf.append(segment[i + 1])
            i += 2
        elif c == '*':
            flush()
            # Runs of stars inside a component behave like one star
            if not tokens or not isinstance(tokens[-1], Star):
                tokens.append(Star())
            i += 1
        elif c == '?':
            flush()
            tokens.append(AnyChar())
            i += 1
        elif c == '[':
            char_class, i = _parse_char_class(segment, i, error)
            flush()
            tokens.append(char_class)
        else:
            buf.append(c)
            i += 1
    flush()
    return tuple(tokens)


def parse_line(line: str, source_file: Optional[str] = None,
               line_number: int = 0) -> Optional[Pattern]:
    """
    Parse one rule line

    Args:
        line: Raw line text (line endings are tolerated)
        source_file: Identity of the rule file the line came from
        line_number: 1-based line number within that file

    Returns:
        Pattern, or None for blank lines and comments

    Raises:
        PatternSyntaxError: If the line is malformed
    """
    raw = line.rstrip('\r\n')
    if line_number <= 1 and raw.startswith('\ufeff'):
        raw = raw[1:]

    def error(message: str) -> PatternSyntaxError:
        return PatternSyntaxError(message, source_file, line_number, raw)

    text = _strip_trailing_whitespace(raw)
    if not text or text.startswith('#'):
        return None

    negated = text.startswith('!')
    if negated:
        text = text[1:]

    directory_only = False
    while text.endswith('/') and not _escaped(text, len(text) - 1):
        directory_only = True
        text = text[:-1]

    anchored = text.startswith('/')
    if anchored:
        text = text.lstrip('/')
    if '/' in text:
        # A separator anywhere but the end ties the pattern to its base directory
        anchored = True

    segments: List[Segment] = []
    for piece in text.split('/'):
        if not piece:
            continue
        if piece == GLOBSTAR:
            if segments and segments[-1].is_globstar:
                continue
            segments.append(Segment(GLOBSTAR))
        else:
            segments.append(Segment(piece, _tokenize(piece, error)))

    if not segments:
        return None

    return Pattern(
        raw=raw,
        segments=tuple(segments),
        anchored_at_root=anchored,
        directory_only=directory_only,
        negated=negated,
        source_file=source_file,
        line_number=line_number,
    )


def parse_lines(lines: Union[str, Iterable[str]], source_file: Optional[str] = None
                ) -> Tuple[List[Pattern], List[PatternSyntaxError]]:
    """
    Parse a whole rule file, collecting errors instead of aborting

    Args:
        lines: File content or an iterable of lines
        source_file: Identity of the rule file

    Returns:
        Tuple of (patterns in file order, syntax errors)
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    patterns: List[Pattern] = []
    errors: List[PatternSyntaxError] = []
    for line_number, line in enumerate(lines, 1):
        try:
            pattern = parse_line(line, source_file, line_number)
        except PatternSyntaxError as e:
            errors.append(e)
            continue
        if pattern is not None:
            patterns.append(pattern)
    return patterns, errors
