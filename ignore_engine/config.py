"""
Configuration for an ignore engine instance
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .constants import (
    DEFAULT_OUTER_FILES, DEFAULT_RULE_FILENAMES, MAX_CACHE_SIZE,
    MAX_IGNORE_FILE_SIZE, MAX_PATTERNS_PER_FILE,
)
from .utils import get_logger

logger = get_logger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _env_list(name: str) -> Optional[Tuple[str, ...]]:
    value = os.environ.get(name)
    if value is None:
        return None
    return tuple(item.strip() for item in value.split(',') if item.strip())


@dataclass
class EngineConfig:
    """Settings for one IgnoreManager"""
    rule_filenames: Tuple[str, ...] = DEFAULT_RULE_FILENAMES
    # Global rule files; relative entries are taken from the root
    outer_files: Tuple[str, ...] = DEFAULT_OUTER_FILES
    cache_size: int = MAX_CACHE_SIZE
    ignore_case: bool = False
    use_defaults: bool = True
    default_patterns: List[str] = field(default_factory=list)
    max_rule_file_size: int = MAX_IGNORE_FILE_SIZE
    max_patterns_per_file: int = MAX_PATTERNS_PER_FILE

    def __post_init__(self):
        """Validate configuration values"""
        self.rule_filenames = tuple(self.rule_filenames) or DEFAULT_RULE_FILENAMES
        self.outer_files = tuple(self.outer_files)
        self.cache_size = max(0, int(self.cache_size))
        self.max_rule_file_size = max(1, int(self.max_rule_file_size))
        self.max_patterns_per_file = max(1, int(self.max_patterns_per_file))
        self.default_patterns = list(self.default_patterns)

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """
        Build a configuration from IGNORE_ENGINE_* environment variables

        Args:
            **overrides: Explicit values that win over the environment

        Returns:
            EngineConfig instance
        """
        values = {}

        cache_size = os.environ.get('IGNORE_ENGINE_CACHE_SIZE')
        if cache_size is not None:
            try:
                values['cache_size'] = int(cache_size)
            except ValueError:
                logger.warning(f"Ignoring invalid IGNORE_ENGINE_CACHE_SIZE: {cache_size!r}")

        values['ignore_case'] = _env_bool('IGNORE_ENGINE_IGNORE_CASE', False)
        values['use_defaults'] = _env_bool('IGNORE_ENGINE_USE_DEFAULTS', True)

        rule_files = _env_list('IGNORE_ENGINE_RULE_FILES')
        if rule_files:
            values['rule_filenames'] = rule_files
        outer_files = _env_list('IGNORE_ENGINE_OUTER_FILES')
        if outer_files is not None:
            values['outer_files'] = outer_files

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
