"""
Gitignore-style ignore rule engine

This package answers one question: is a path ignored by the rule files
that apply to it? It supports:
- Nested rule files where deeper files override shallower ones
- Negation, anchoring, directory-only rules and `**` globs
- Directory pruning: nothing below an ignored directory is re-included
- Hot reloading via change notifications or a watchdog observer
- A version-checked LRU verdict cache with per-file invalidation
"""

from .config import EngineConfig
from .constants import IGNORE_FILENAME
from .errors import (
    Diagnostic, IgnoreEngineError, PathOutsideScope, PatternSyntaxError, RuleFileUnreadable,
)
from .file_loader import FilesystemRuleFileSource, InMemoryRuleFileSource, RuleFileSource
from .manager import IgnoreManager, IgnoreReason, IgnoreResult
from .pattern import Pattern, parse_line, parse_lines
from .matcher import CompiledPattern, compile_pattern
from .rule_set import RuleSet, Verdict
from .registry import RuleSetRegistry
from .resolver import RuleSetResolver
from .cache import VerdictCache

__version__ = "0.1.0"

__all__ = [
    'IGNORE_FILENAME',
    'EngineConfig',
    'IgnoreManager',
    'IgnoreResult',
    'IgnoreReason',
    'Pattern',
    'parse_line',
    'parse_lines',
    'CompiledPattern',
    'compile_pattern',
    'RuleSet',
    'Verdict',
    'RuleSetRegistry',
    'RuleSetResolver',
    'VerdictCache',
    'RuleFileSource',
    'FilesystemRuleFileSource',
    'InMemoryRuleFileSource',
    'Diagnostic',
    'IgnoreEngineError',
    'PatternSyntaxError',
    'RuleFileUnreadable',
    'PathOutsideScope',
]
