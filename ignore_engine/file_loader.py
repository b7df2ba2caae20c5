"""
Rule file sources: where rule file contents come from

The manager only needs to discover rule files, read them, and hear about
changes. The filesystem source does that against a real tree; the
in-memory source backs hosts that already hold the contents and tests.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .constants import DEFAULT_RULE_FILENAMES, MAX_IGNORE_FILE_SIZE
from .errors import RuleFileUnreadable
from .utils import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[str], None]

# Never descend into these while discovering rule files
SKIP_DIRS = frozenset({'.git', '.hg', '.svn', '.bzr'})


class RuleFileSource(ABC):
    """
    Abstract provider of rule file contents

    Subscribers are called with the path of a rule file that was created,
    changed or removed; they pull the new state with exists()/read().
    """

    def __init__(self, rule_filenames: Iterable[str] = DEFAULT_RULE_FILENAMES):
        self.rule_filenames = tuple(rule_filenames)
        self._subscribers: List[ChangeCallback] = []

    @abstractmethod
    def discover(self, start: Optional[str] = None) -> List[str]:
        """Paths of all rule files (below start when given), root-most first"""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether a rule file currently exists"""

    @abstractmethod
    def read(self, path: str) -> str:
        """
        Read a rule file

        Raises:
            RuleFileUnreadable: If the file cannot be read
        """

    def is_rule_file(self, path: str) -> bool:
        return os.path.basename(path) in self.rule_filenames

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a change callback

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, path: str):
        for callback in list(self._subscribers):
            callback(path)


class FilesystemRuleFileSource(RuleFileSource):
    """
    Reads rule files from disk below a root directory
    """

    def __init__(self, root_path, rule_filenames: Iterable[str] = DEFAULT_RULE_FILENAMES,
                 max_file_size: int = MAX_IGNORE_FILE_SIZE):
        """
        Initialize source

        Args:
            root_path: Directory to search for rule files
            rule_filenames: Names of rule files to look for
            max_file_size: Files larger than this are reported unreadable
        """
        super().__init__(rule_filenames)
        self.root_path = Path(root_path)
        self.max_file_size = max_file_size

    def discover(self, start: Optional[str] = None) -> List[str]:
        """
        Find all rule files under the root path

        Args:
            start: Only search below this directory

        Returns:
            List of rule file paths, ordered from root to leaves
        """
        found = []
        for dirpath, dirnames, filenames in os.walk(start or self.root_path):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)

            for name in self.rule_filenames:
                if name in filenames:
                    found.append(os.path.join(dirpath, name))

        found.sort(key=lambda p: len(Path(p).parts))
        logger.debug(f"Found {len(found)} rule files under {start or self.root_path}")
        return found

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def read(self, path: str) -> str:
        try:
            file_size = os.stat(path).st_size
        except FileNotFoundError:
            raise RuleFileUnreadable(path, "file not found")
        except OSError as e:
            raise RuleFileUnreadable(path, f"cannot stat file: {e}")

        if file_size > self.max_file_size:
            raise RuleFileUnreadable(
                path, f"file too large: {file_size} bytes (max: {self.max_file_size})"
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise RuleFileUnreadable(path, f"not valid UTF-8: {e}")
        except OSError as e:
            raise RuleFileUnreadable(path, f"error reading file: {e}")


class InMemoryRuleFileSource(RuleFileSource):
    """
    Rule files held in a dictionary of path -> contents
    """

    def __init__(self, files: Optional[Dict[str, str]] = None,
                 rule_filenames: Iterable[str] = DEFAULT_RULE_FILENAMES):
        super().__init__(rule_filenames)
        self._files: Dict[str, str] = {os.fspath(k): v for k, v in (files or {}).items()}
        self._unreadable: Dict[str, str] = {}

    def discover(self, start: Optional[str] = None) -> List[str]:
        paths = [p for p in self._files if self.is_rule_file(p)]
        paths.extend(p for p in self._unreadable if self.is_rule_file(p) and p not in self._files)
        if start is not None:
            paths = [p for p in paths if Path(start) in Path(p).parents]
        return sorted(paths, key=lambda p: (len(Path(p).parts), p))

    def exists(self, path: str) -> bool:
        path = os.fspath(path)
        return path in self._files or path in self._unreadable

    def read(self, path: str) -> str:
        path = os.fspath(path)
        if path in self._unreadable:
            raise RuleFileUnreadable(path, self._unreadable[path])
        try:
            return self._files[path]
        except KeyError:
            raise RuleFileUnreadable(path, "file not found")

    def set(self, path, contents: str):
        """Create or replace a rule file and notify subscribers"""
        path = os.fspath(path)
        self._files[path] = contents
        self._unreadable.pop(path, None)
        self._notify(path)

    def remove(self, path):
        """Delete a rule file and notify subscribers"""
        path = os.fspath(path)
        self._files.pop(path, None)
        self._unreadable.pop(path, None)
        self._notify(path)

    def set_unreadable(self, path, reason: str = "permission denied"):
        """Make reads of a file fail, as an I/O error would"""
        path = os.fspath(path)
        self._files.pop(path, None)
        self._unreadable[path] = reason
        self._notify(path)
