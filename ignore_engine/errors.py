"""
Error taxonomy and diagnostic records for rule file processing
"""

from dataclasses import dataclass
from typing import Optional


class IgnoreEngineError(Exception):
    """Base class for all ignore-engine errors."""
    pass


class PatternSyntaxError(IgnoreEngineError):
    """Raised when a single rule line cannot be parsed."""

    def __init__(self, message: str, source_file: Optional[str] = None,
                 line_number: int = 0, pattern: str = ""):
        self.message = message
        self.source_file = source_file
        self.line_number = line_number
        self.pattern = pattern
        super().__init__(f"{source_file or '<string>'}:{line_number}: {message}")


class RuleFileUnreadable(IgnoreEngineError):
    """Raised when a rule file cannot be read (missing, too large, I/O failure)."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read rule file {path}: {reason}")


class PathOutsideScope(IgnoreEngineError):
    """Raised when a path is required to be under the managed root but is not."""
    pass


@dataclass(frozen=True)
class Diagnostic:
    """A problem found in a rule file"""
    file: str
    line: int
    pattern: str
    message: str
    severity: str = "error"  # "error" or "warning"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}: {self.severity}: {self.message}"

    @classmethod
    def from_syntax_error(cls, error: PatternSyntaxError) -> "Diagnostic":
        return cls(
            file=error.source_file or "",
            line=error.line_number,
            pattern=error.pattern,
            message=error.message,
        )

    @classmethod
    def from_unreadable(cls, error: RuleFileUnreadable) -> "Diagnostic":
        return cls(file=error.path, line=0, pattern="", message=error.reason)
