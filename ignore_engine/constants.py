"""
Central configuration constants for rule file processing
"""

# Rule file names discovered in the tree
IGNORE_FILENAME = ".gitignore"
DEFAULT_RULE_FILENAMES = (IGNORE_FILENAME,)

# Global rule files relative to the root (loaded as outer rule sets)
DEFAULT_OUTER_FILES = (".git/info/exclude",)

# Patterns that always apply, below every rule file in precedence
DEFAULT_EXCLUSIONS = [
    # Version control metadata
    ".git/",
    ".hg/",
    ".svn/",
    ".bzr/",
]

# Pseudo file id for the default patterns
DEFAULTS_SOURCE = "<defaults>"

# Precedence of rule sets sharing a base directory (lower sweeps first)
ORIGIN_DEFAULTS = 0
ORIGIN_OUTER = 1
ORIGIN_LOCAL = 2

# Limits for security and performance
MAX_IGNORE_FILE_SIZE = 1024 * 1024  # 1MB
MAX_PATTERNS_PER_FILE = 10000
MAX_CACHE_SIZE = 10000

# Patterns flagged as overly broad by the inspections
BROAD_PATTERNS = ('*', '**', '**/*', '/*', '/**')
