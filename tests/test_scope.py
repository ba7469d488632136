import os
import threading
from pathlib import Path

import pytest

from toolcap.policy.evaluate import EvaluationContext
from toolcap.policy.model import And, CommandName, Outcome, Rule, WithinDirectory
from toolcap.policy.operation import Execute
from toolcap.policy.ruleset import Ruleset
from toolcap.policy.scope import (
    DEFAULT_RESOLVE_TIMEOUT,
    CanonicalizationError,
    FilesystemResolver,
    StaticResolver,
    canonicalize,
    is_within,
)


def _resolver() -> StaticResolver:
    return StaticResolver(
        directories={"/project/src/pkg", "/project/src2", "/outside", "/home/me"},
        links={
            "/project/src/escape": "/outside",
            "/project/src/up": "../../outside",
            "/home/me/work": "/project/src/pkg",
        },
    )


def test_plain_subdirectory_is_within():
    resolver = _resolver()
    assert is_within("/project/src", "/project/src/pkg", resolver)
    assert is_within("/project/src", "/project/src", resolver)
    assert is_within("/project/src", "/project/src/pkg/../../src/pkg", resolver)


def test_symlink_inside_scope_pointing_outside_is_rejected():
    resolver = _resolver()
    assert not is_within("/project/src", "/project/src/escape", resolver)
    assert not is_within("/project/src", "/project/src/up", resolver)


def test_symlink_outside_scope_pointing_inside_is_accepted():
    assert is_within("/project/src", "/home/me/work", _resolver())


def test_sibling_with_common_prefix_is_not_within():
    assert not is_within("/project/src", "/project/src2", _resolver())


def test_resolution_failures_are_non_matches():
    resolver = _resolver()
    assert not is_within("/project/src", "/project/src/missing", resolver)
    assert not is_within("/project/src", None, resolver)
    assert not is_within("/project/src", "relative/dir", resolver)


def test_symlink_loop_fails_to_canonicalize():
    resolver = StaticResolver(links={"/a": "/b", "/b": "/a"})
    with pytest.raises(CanonicalizationError):
        canonicalize("/a", resolver)
    assert not is_within("/", "/a", resolver)


def test_resolver_errors_and_relative_results_are_non_matches():
    class Broken:
        def resolve(self, path):
            raise CanonicalizationError("disk on fire")

    class Relative:
        def resolve(self, path):
            return "project/src"

    assert not is_within("/project/src", "/project/src", Broken())
    assert not is_within("/project/src", "/project/src", Relative())


def test_within_directory_rule():
    ruleset = Ruleset([Rule(And([CommandName("make"), WithinDirectory("/project/src")]), Outcome.ALLOW)])
    resolver = _resolver()
    inside = Execute("make", working_directory="/project/src/pkg")
    escaped = Execute("make", working_directory="/project/src/escape")
    nowhere = Execute("make")
    assert ruleset.evaluate(inside, resolver) is Outcome.ALLOW
    assert ruleset.evaluate(escaped, resolver) is Outcome.UNKNOWN
    assert ruleset.evaluate(nowhere, resolver) is Outcome.UNKNOWN


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_filesystem_resolver_follows_real_symlinks(tmp_path: Path):
    src = tmp_path / "project" / "src"
    (src / "pkg").mkdir(parents=True)
    outside = tmp_path / "outside"
    outside.mkdir()
    (src / "escape").symlink_to(outside, target_is_directory=True)
    (tmp_path / "alias").symlink_to(src, target_is_directory=True)

    resolver = FilesystemResolver()
    assert is_within(str(src), str(src / "pkg"), resolver)
    assert not is_within(str(src), str(src / "escape"), resolver)
    assert is_within(str(tmp_path / "alias"), str(src / "pkg"), resolver)
    assert not is_within(str(src), str(src / "missing"), resolver)


def test_filesystem_resolver_with_timeout(tmp_path: Path):
    resolver = FilesystemResolver(timeout=5.0)
    assert is_within(str(tmp_path), str(tmp_path), resolver)
    with pytest.raises(CanonicalizationError):
        resolver.resolve(str(tmp_path / "nope"))


def test_hung_resolution_times_out_on_a_daemon_thread(monkeypatch):
    release = threading.Event()

    def hang(path):
        release.wait(5)
        return path

    monkeypatch.setattr(FilesystemResolver, "_realpath", staticmethod(hang))
    resolver = FilesystemResolver(timeout=0.05)
    try:
        with pytest.raises(CanonicalizationError, match="timed out"):
            resolver.resolve("/mnt/stale")
        workers = [t for t in threading.enumerate() if t.name == "toolcap-resolve"]
        assert workers
        assert all(t.daemon for t in workers)
    finally:
        release.set()


def test_default_context_resolver_is_bounded():
    resolver = EvaluationContext().resolver
    assert isinstance(resolver, FilesystemResolver)
    assert resolver.timeout == DEFAULT_RESOLVE_TIMEOUT
