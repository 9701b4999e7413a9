"""Tests for :mod:`dirwatcher.watch.registry`."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dirwatcher.watch.events import WATCHED_KINDS
from dirwatcher.watch.patterns import DirectoryFilter
from dirwatcher.watch.registry import WatchSetRegistry
from dirwatcher.watch.service import Sensitivity


def test_seeding_registers_every_directory_once(fake_service, tree):
    registry = WatchSetRegistry(fake_service, root=tree)

    assert len(registry) == 4
    assert registry.paths() == sorted([tree, tree / "a", tree / "a" / "b", tree / "c"])
    assert all(registry.key_of(path) is not None for path in registry.paths())


def test_registration_requests_all_kinds_at_high_sensitivity(fake_service, tree):
    WatchSetRegistry(fake_service, root=tree)

    for _directory, kinds, sensitivity in fake_service.registrations:
        assert kinds == WATCHED_KINDS
        assert sensitivity is Sensitivity.HIGH


def test_seeding_does_not_follow_symlinks(fake_service, tree, tmp_path, make_symlink):
    outside = tmp_path / "outside"
    (outside / "deep").mkdir(parents=True)
    make_symlink(outside, tree / "link")

    registry = WatchSetRegistry(fake_service, root=tree)

    assert tree / "link" not in registry
    assert outside not in registry
    assert len(registry) == 4


def test_symlink_cycle_does_not_loop(fake_service, tree, make_symlink):
    make_symlink(tree, tree / "a" / "loop")

    registry = WatchSetRegistry(fake_service, root=tree)

    assert len(registry) == 4


def test_reregistering_directory_is_a_no_op(fake_service, tree):
    registry = WatchSetRegistry(fake_service, root=tree)
    key = registry.key_of(tree / "a")

    assert registry.register_directory(tree / "a") is key
    assert len(registry) == 4


def test_filter_is_whole_string_match(fake_service, tmp_path):
    root = tmp_path / "watch"
    (root / "app.log").mkdir(parents=True)
    (root / "tmp").mkdir()

    registry = WatchSetRegistry(fake_service, root=root, directory_filter=DirectoryFilter(r".*\.log$"))

    # Root does not match but its children are still walked
    assert registry.paths() == [root / "app.log"]
    assert registry.register_directory(root / "tmp") is None
    assert root / "tmp" not in registry


def test_substring_match_is_not_enough(fake_service, tmp_path):
    logs = tmp_path / "logs"
    logs.mkdir()
    registry = WatchSetRegistry(fake_service, directory_filter=DirectoryFilter("logs"))

    assert registry.register_directory(logs) is None
    assert registry.is_empty()


def test_filtered_directory_issues_no_registration(fake_service, tmp_path):
    registry = WatchSetRegistry(fake_service, directory_filter=DirectoryFilter("nothing"))

    registry.register_tree(tmp_path)

    assert fake_service.registrations == []


def test_failure_keeps_earlier_registrations(fake_service, tmp_path):
    root = tmp_path / "root"
    (root / "bad").mkdir(parents=True)
    fake_service.fail_on.add(root / "bad")
    registry = WatchSetRegistry(fake_service)

    with pytest.raises(PermissionError):
        registry.register_tree(root)

    assert registry.paths() == [root]


def test_seeding_missing_root_raises(fake_service, tmp_path):
    with pytest.raises(FileNotFoundError):
        WatchSetRegistry(fake_service, root=tmp_path / "missing")


def test_register_tree_on_a_file_raises(fake_service, tmp_path):
    target = tmp_path / "plain.txt"
    target.write_text("x", encoding="utf-8")
    registry = WatchSetRegistry(fake_service)

    with pytest.raises(NotADirectoryError):
        registry.register_tree(target)
    assert registry.is_empty()


def test_retire_removes_mapping(fake_service, tree):
    registry = WatchSetRegistry(fake_service, root=tree / "c")
    key = registry.key_of(tree / "c")

    registry.retire(key)

    assert registry.is_empty()
    assert registry.path_of(key) is None
    registry.retire(key)


def test_new_key_for_same_path_supersedes_stale_one(fake_service, tree):
    registry = WatchSetRegistry(fake_service, root=tree / "c")
    stale = registry.key_of(tree / "c")
    stale.valid = False

    fresh = registry.register_directory(tree / "c")

    assert fresh is not stale
    assert registry.path_of(stale) is None
    assert registry.path_of(fresh) == tree / "c"
    assert len(registry) == 1


def test_registration_is_traced_at_debug(fake_service, tree, caplog):
    caplog.set_level(logging.DEBUG, logger="dirwatcher.watch.registry")

    WatchSetRegistry(fake_service, root=tree / "c")

    assert f"register: {tree / 'c'}" in caplog.text


def test_eligibility_ignores_log_level(fake_service, tmp_path, caplog):
    (tmp_path / "x.log").mkdir()
    directory_filter = DirectoryFilter(r".*\.log")

    caplog.set_level(logging.WARNING)
    quiet = WatchSetRegistry(fake_service, root=tmp_path, directory_filter=directory_filter)
    caplog.set_level(logging.DEBUG)
    verbose = WatchSetRegistry(fake_service, root=tmp_path, directory_filter=directory_filter)

    assert quiet.paths() == verbose.paths() == [Path(tmp_path / "x.log")]


def test_seeding_covers_the_whole_tree_even_when_root_is_filtered(fake_service, tmp_path):
    root = tmp_path / "watch"
    (root / "app.log").mkdir(parents=True)

    WatchSetRegistry(fake_service, root=root, directory_filter=DirectoryFilter(r".*\.log$"))

    assert fake_service.trees == [root]
