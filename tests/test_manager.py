#!/usr/bin/env python3
"""
Tests for the IgnoreManager API: queries, change notifications, diagnostics
"""

import threading

import pytest

from ignore_engine import (
    EngineConfig, IgnoreManager, InMemoryRuleFileSource, PathOutsideScope,
)


@pytest.fixture
def root(tmp_path):
    return tmp_path / "project"


def rule_file(root, *parts):
    return str(root.joinpath(*parts, ".gitignore"))


def make_manager(root, files, **overrides):
    overrides.setdefault('use_defaults', False)
    source = InMemoryRuleFileSource(files)
    return IgnoreManager(root, source=source, **overrides), source


def test_scenarios(root):
    manager, _ = make_manager(root, {
        rule_file(root): "build/\n*.log\n!keep.log\n*.tmp\n",
        rule_file(root, "sub"): "!important.tmp\n",
    })

    assert manager.is_ignored("build/a.txt").ignored
    assert manager.is_ignored("app.log").ignored
    assert not manager.is_ignored("keep.log").ignored
    assert not manager.is_ignored("sub/important.tmp").ignored
    assert manager.is_ignored("other.tmp").ignored


def test_is_ignored_reports_reason(root):
    manager, _ = make_manager(root, {rule_file(root): "# header\nbuild/\n"})

    result = manager.is_ignored(root / "build" / "a.txt")
    assert result
    assert result.reason.file == rule_file(root)
    assert result.reason.line == 2
    assert result.reason.pattern == "build/"

    result = manager.is_ignored(root / "src" / "a.txt")
    assert not result
    assert result.reason is None


def test_relative_and_absolute_paths_agree(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n"})
    assert manager.should_ignore("logs/app.log", False)
    assert manager.should_ignore(root / "logs" / "app.log", False)
    assert manager.should_ignore(str(root / "logs" / "app.log"), False)


def test_path_outside_root_is_not_ignored(root, tmp_path):
    manager, _ = make_manager(root, {rule_file(root): "*\n"})

    assert not manager.is_ignored(tmp_path / "elsewhere" / "a.txt").ignored
    with pytest.raises(PathOutsideScope):
        manager.relative_path(tmp_path / "elsewhere" / "a.txt")
    assert manager.relative_path(root / "a" / "b.txt") == "a/b.txt"


def test_on_rule_file_changed_swaps_rule_set(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n"})
    assert manager.should_ignore("a.log", False)

    old = manager.get_rule_set(rule_file(root))
    new = manager.on_rule_file_changed(rule_file(root), "*.tmp\n")

    assert new.version > old.version
    assert not manager.should_ignore("a.log", False)
    assert manager.should_ignore("a.tmp", False)


def test_new_rule_file_is_picked_up(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n"})
    assert manager.should_ignore("sub/a.log", False)

    manager.on_rule_file_changed(rule_file(root, "sub"), "!a.log\n")
    assert not manager.should_ignore("sub/a.log", False)
    assert rule_file(root, "sub") in manager.get_ignore_files()


def test_resubmitting_same_content_is_a_noop(root):
    contents = "*.log\n!keep.log\n"
    manager, _ = make_manager(root, {rule_file(root): contents})

    manager.is_ignored("a.log")
    manager.is_ignored("a.log")
    before = manager.get_stats()['cache']
    current = manager.get_rule_set(rule_file(root))

    returned = manager.on_rule_file_changed(rule_file(root), contents)

    assert returned is current
    assert manager.get_stats()['cache'] == before
    manager.is_ignored("a.log")
    after = manager.get_stats()['cache']
    assert after['hits'] == before['hits'] + 1
    assert after['misses'] == before['misses']


def test_change_invalidates_only_dependent_verdicts(root):
    manager, _ = make_manager(root, {
        rule_file(root, "a"): "*.log\n",
        rule_file(root, "b"): "*.log\n",
    })
    manager.is_ignored("a/x.log")
    manager.is_ignored("b/x.log")
    cached = manager.get_stats()['cache']['size']

    manager.on_rule_file_changed(rule_file(root, "a"), "*.tmp\n")

    assert manager.get_stats()['cache']['size'] == cached - 1
    assert not manager.is_ignored("a/x.log").ignored
    assert manager.is_ignored("b/x.log").ignored


def test_on_rule_file_removed(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n"})
    assert manager.should_ignore("a.log", False)

    assert manager.on_rule_file_removed(rule_file(root))
    assert not manager.should_ignore("a.log", False)
    assert not manager.on_rule_file_removed(rule_file(root))
    assert manager.get_ignore_files() == []


def test_source_notifications_drive_updates(root):
    manager, source = make_manager(root, {rule_file(root): "*.log\n"})

    source.set(rule_file(root), "*.tmp\n")
    assert manager.should_ignore("a.tmp", False)
    assert not manager.should_ignore("a.log", False)

    source.remove(rule_file(root))
    assert not manager.should_ignore("a.tmp", False)

    source.set(str(root / "notes.txt"), "*\n")
    assert manager.get_ignore_files() == []


def test_unreadable_rule_file_contributes_nothing(root):
    manager, source = make_manager(root, {rule_file(root): "*.log\n"})

    source.set_unreadable(rule_file(root), "permission denied")

    assert not manager.should_ignore("a.log", False)
    errors = manager.diagnostics(include_warnings=False)
    assert len(errors) == 1
    assert errors[0].file == rule_file(root)
    assert "permission denied" in errors[0].message

    source.set(rule_file(root), "*.log\n")
    assert manager.should_ignore("a.log", False)
    assert manager.diagnostics(include_warnings=False) == []


def test_syntax_errors_skip_only_the_bad_line(root):
    manager, _ = make_manager(root, {rule_file(root): "[oops\n*.log\n"})

    assert manager.should_ignore("a.log", False)
    errors = manager.diagnostics(include_warnings=False)
    assert [(e.line, e.severity) for e in errors] == [(1, "error")]
    assert "unterminated character class" in errors[0].message


def test_diagnostics_include_warnings(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n*.log\n"})
    diagnostics = manager.diagnostics()
    assert [(d.line, d.severity) for d in diagnostics] == [(2, "warning")]


def test_default_exclusions(root):
    manager, _ = make_manager(root, {}, use_defaults=True)
    assert manager.should_ignore(".git/config", False)
    assert manager.should_ignore("sub/.hg/store", False)
    assert not manager.should_ignore("src/main.py", False)
    assert manager.get_ignore_files() == []


def test_rule_file_can_reinclude_default(root):
    manager, _ = make_manager(root, {rule_file(root): "!.svn/\n"}, use_defaults=True)
    assert not manager.should_ignore(".svn", True)
    assert manager.should_ignore(".git", True)


def test_custom_default_patterns(root):
    manager, _ = make_manager(root, {}, default_patterns=["*.pyc"])
    assert manager.should_ignore("pkg/mod.pyc", False)
    assert manager.default_patterns == ["*.pyc"]


def test_outer_rule_file_is_overridden_by_local_files(root):
    exclude = str(root / ".git" / "info" / "exclude")
    manager, _ = make_manager(root, {
        exclude: "*.secret\n",
        rule_file(root): "!shared.secret\n",
    })

    assert manager.should_ignore("a.secret", False)
    assert manager.should_ignore("deep/a.secret", False)
    assert not manager.should_ignore("shared.secret", False)
    assert manager.is_rule_file(exclude)
    assert exclude in manager.get_ignore_files()


def test_ignore_case(root):
    manager, _ = make_manager(root, {rule_file(root): "*.LOG\n"}, ignore_case=True)
    assert manager.should_ignore("App.log", False)


def test_custom_rule_filenames(root):
    ignore_file = str(root / ".ignore")
    source = InMemoryRuleFileSource({ignore_file: "*.tmp\n"}, rule_filenames=(".ignore",))
    config = EngineConfig(rule_filenames=(".ignore",), use_defaults=False)
    manager = IgnoreManager(root, config=config, source=source)

    assert manager.should_ignore("a.tmp", False)
    assert manager.is_rule_file(ignore_file)
    assert not manager.is_rule_file(rule_file(root))


def test_filter_paths_and_patterns_for_path(root):
    manager, _ = make_manager(root, {
        rule_file(root): "*.log\n",
        rule_file(root, "sub"): "!keep.log\n",
    })

    assert manager.filter_paths(["a.log", "b.py", "sub/keep.log"]) == ["b.py", "sub/keep.log"]
    patterns = manager.get_patterns_for_path("sub/keep.log")
    assert [p.raw for p in patterns] == ["*.log", "!keep.log"]


def test_close_stops_listening(root):
    manager, source = make_manager(root, {rule_file(root): "*.log\n"})
    with manager:
        pass
    source.set(rule_file(root), "*.tmp\n")
    assert manager.should_ignore("a.log", False)


def test_readers_see_complete_rule_sets_during_updates(root):
    manager, _ = make_manager(root, {rule_file(root): "*.log\n"})
    results = []
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            results.append(manager.is_ignored("a.log").ignored)

    def writer():
        for i in range(200):
            contents = "*.log\n" if i % 2 else "*.log\n!a.log\n"
            manager.on_rule_file_changed(rule_file(root), contents)
        stop.set()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for thread in threads:
        thread.start()
    writer()
    for thread in threads:
        thread.join()

    assert set(results) <= {True, False}
    manager.on_rule_file_changed(rule_file(root), "*.log\n!a.log\n")
    assert not manager.is_ignored("a.log").ignored


class ObservedSource(InMemoryRuleFileSource):
    """Calls a hook before every read, i.e. in the middle of a reload"""

    def __init__(self, files, on_read=None):
        super().__init__(files)
        self.on_read = on_read

    def read(self, path):
        if self.on_read is not None:
            self.on_read(path)
        return super().read(path)


def test_reload_all_publishes_one_snapshot(root):
    source = ObservedSource({
        rule_file(root): "*.log\n",
        rule_file(root, "sub"): "*.tmp\n",
    })
    manager = IgnoreManager(root, source=source, use_defaults=False)
    seen = []
    source.on_read = lambda path: seen.append((
        manager.should_ignore("a.log", False),
        manager.should_ignore("sub/b.tmp", False),
        len(manager.get_ignore_files()),
    ))

    manager.reload_all()

    assert len(seen) == 2
    assert set(seen) == {(True, True, 2)}
    assert manager.should_ignore("sub/b.tmp", False)


def test_reload_all_switches_old_state_to_new_state(root):
    source = ObservedSource({rule_file(root): "*.log\n"})
    manager = IgnoreManager(root, source=source, use_defaults=False)
    manager.close()
    source.set(rule_file(root), "*.tmp\n")
    source.set(rule_file(root, "sub"), "*.py\n")
    seen = []
    source.on_read = lambda path: seen.append(manager.should_ignore("a.log", False))

    manager.reload_all()

    assert seen == [True, True]
    assert not manager.should_ignore("a.log", False)
    assert manager.should_ignore("a.tmp", False)
    assert manager.should_ignore("sub/x.py", False)


def test_reload_all_keeps_unchanged_rule_sets(root):
    manager, source = make_manager(root, {
        rule_file(root): "*.log\n",
        rule_file(root, "sub"): "*.tmp\n",
    })
    assert manager.should_ignore("sub/a.log", False)
    before = manager.get_rule_set(rule_file(root))
    cached = len(manager._cache)

    manager.close()
    source.set(rule_file(root, "sub"), "*.py\n")
    manager.reload_all()

    assert manager.get_rule_set(rule_file(root)) is before
    assert manager.get_rule_set(rule_file(root, "sub")).version > before.version
    assert len(manager._cache) < cached
    assert manager.should_ignore("sub/a.log", False)
    assert manager.should_ignore("sub/a.py", False)


def test_reload_all_drops_removed_rule_files(root):
    manager, source = make_manager(root, {
        rule_file(root): "*.log\n",
        rule_file(root, "sub"): "*.tmp\n",
    })
    assert manager.should_ignore("sub/a.tmp", False)

    manager.close()
    source.remove(rule_file(root, "sub"))
    manager.reload_all()

    assert manager.get_ignore_files() == [rule_file(root)]
    assert not manager.should_ignore("sub/a.tmp", False)


class TestFilesystem:
    """Manager backed by a real directory tree"""

    @pytest.fixture(autouse=True)
    def tree(self, tmp_path):
        self.root = tmp_path
        for relative in ["src/main.py", "build/out.o", "app.log", "docs/keep.log",
                         ".git/HEAD", "nested/deep/file.txt"]:
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x")
        (tmp_path / ".gitignore").write_text("build/\n*.log\n")
        (tmp_path / "docs" / ".gitignore").write_text("!keep.log\n")

    def test_discovers_rule_files(self):
        manager = IgnoreManager(self.root)
        files = manager.get_ignore_files()
        assert files == [str(self.root / ".gitignore"), str(self.root / "docs" / ".gitignore")]

    def test_iter_files_skips_ignored(self):
        manager = IgnoreManager(self.root)
        found = sorted(manager.relative_path(p) for p in manager.iter_files())
        assert found == [".gitignore", "docs/.gitignore", "docs/keep.log",
                         "nested/deep/file.txt", "src/main.py"]

    def test_should_ignore_looks_up_directories(self):
        manager = IgnoreManager(self.root)
        assert manager.should_ignore(self.root / "build")
        assert not manager.should_ignore(self.root / "src")

    def test_notify_file_changed_rereads_disk(self):
        manager = IgnoreManager(self.root)
        ignore_file = self.root / ".gitignore"

        ignore_file.write_text("*.py\n")
        manager.notify_file_changed(ignore_file)
        assert manager.should_ignore(self.root / "src" / "main.py")
        assert not manager.should_ignore(self.root / "app.log")

        ignore_file.unlink()
        manager.notify_file_changed(ignore_file)
        assert not manager.should_ignore(self.root / "src" / "main.py")
        assert str(ignore_file) not in manager.get_ignore_files()

    def test_notify_ignores_other_files(self):
        manager = IgnoreManager(self.root)
        generation = manager.get_stats()['registry']['generation']
        manager.notify_file_changed(self.root / "src" / "main.py")
        assert manager.get_stats()['registry']['generation'] == generation

    def test_outer_exclude_file(self):
        info = self.root / ".git" / "info"
        info.mkdir(parents=True)
        (info / "exclude").write_text("nested/\n")
        manager = IgnoreManager(self.root)
        assert manager.should_ignore(self.root / "nested" / "deep" / "file.txt")

    def test_oversized_rule_file_is_unreadable(self):
        manager = IgnoreManager(self.root, max_rule_file_size=4)
        assert not manager.should_ignore(self.root / "app.log")
        messages = [d.message for d in manager.diagnostics(include_warnings=False)]
        assert any("file too large" in m for m in messages)

    def test_reload_all(self):
        manager = IgnoreManager(self.root)
        (self.root / "src" / ".gitignore").write_text("*.py\n")
        assert not manager.should_ignore(self.root / "src" / "main.py")
        manager.reload_all()
        assert manager.should_ignore(self.root / "src" / "main.py")

    def test_unused_entries_are_reported_on_request(self):
        (self.root / ".gitignore").write_text("build/\n*.log\ncoverage/\n")
        manager = IgnoreManager(self.root)

        assert manager.diagnostics() == []
        found = manager.diagnostics(check_unused=True)
        assert [(d.file, d.line, d.pattern) for d in found] == [
            (str(self.root / ".gitignore"), 3, "coverage/"),
        ]
        assert manager.diagnostics(include_warnings=False, check_unused=True) == []

    def test_directory_rename_moves_rule_files(self):
        manager = IgnoreManager(self.root)
        (self.root / "docs").rename(self.root / "manual")

        checked = manager.notify_directory_changed(self.root / "docs")
        checked += manager.notify_directory_changed(self.root / "manual")

        assert checked == [str(self.root / "docs" / ".gitignore"),
                           str(self.root / "manual" / ".gitignore")]
        assert manager.get_ignore_files() == [str(self.root / ".gitignore"),
                                              str(self.root / "manual" / ".gitignore")]
        assert not manager.should_ignore(self.root / "manual" / "keep.log")


def test_config_from_env(monkeypatch):
    monkeypatch.setenv('IGNORE_ENGINE_CACHE_SIZE', '5')
    monkeypatch.setenv('IGNORE_ENGINE_IGNORE_CASE', 'true')
    monkeypatch.setenv('IGNORE_ENGINE_RULE_FILES', '.ignore, .gitignore')
    monkeypatch.setenv('IGNORE_ENGINE_OUTER_FILES', '')

    config = EngineConfig.from_env()
    assert config.cache_size == 5
    assert config.ignore_case
    assert config.rule_filenames == ('.ignore', '.gitignore')
    assert config.outer_files == ()

    assert EngineConfig.from_env(cache_size=7).cache_size == 7


def test_config_from_env_rejects_bad_values(monkeypatch):
    monkeypatch.setenv('IGNORE_ENGINE_CACHE_SIZE', 'lots')
    monkeypatch.delenv('IGNORE_ENGINE_IGNORE_CASE', raising=False)
    config = EngineConfig.from_env()
    assert config.cache_size == EngineConfig().cache_size
    assert not config.ignore_case


def test_config_clamps_values():
    config = EngineConfig(cache_size=-3, rule_filenames=(), max_patterns_per_file=0)
    assert config.cache_size == 0
    assert config.rule_filenames == ('.gitignore',)
    assert config.max_patterns_per_file == 1
