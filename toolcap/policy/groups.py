"""Predefined matcher groups and the default ruleset.

Groups are plain matcher values. To widen one, wrap it with extra matchers
using ``extend``; groups themselves are never modified.
"""

from __future__ import annotations

from typing import Callable

from .model import CommandName, Matcher, Or, Outcome, PipedToShell, Rule, command
from .ruleset import Ruleset


def read_only_git() -> Matcher:
    """git subcommands that inspect the repository without changing it."""
    return command(
        "git",
        [
            "status",
            "diff",
            "show",
            "log",
            "shortlog",
            "blame",
            "annotate",
            "branch",
            "tag",
            "remote",
            "stash",
            "describe",
            "rev-parse",
            "ls-files",
            "ls-tree",
            "cat-file",
            "config",
            "for-each-ref",
            "show-ref",
            "worktree",
        ],
    )


def compilation() -> Matcher:
    """Build, type-check and lint invocations across common toolchains."""
    return Or(
        [
            # Rust
            command("cargo", ["build", "check", "test", "clippy", "doc", "fmt", "bench"]),
            CommandName("rustc"),
            CommandName("rustfmt"),
            # Go
            command("go", ["build", "test", "vet", "fmt"]),
            CommandName("gofmt"),
            # TypeScript / JavaScript
            CommandName("tsc"),
            CommandName("node"),
            command("npx", "tsc"),
            CommandName("esbuild"),
            CommandName("swc"),
            # Python
            command("python", flags=["-m"]),
            command("python3", flags=["-m"]),
            CommandName("mypy"),
            command("ruff", "check"),
            command("black", flags=["--check"]),
            CommandName("pylint"),
            CommandName("flake8"),
            # Java
            CommandName("javac"),
            command("gradle", ["build", "test", "check"]),
            command("mvn", ["compile", "test", "verify"]),
            # C / C++
            CommandName("make"),
            CommandName("cmake"),
            CommandName("gcc"),
            CommandName("g++"),
            CommandName("clang"),
            CommandName("clang++"),
            CommandName("cc"),
            CommandName("c++"),
            CommandName("ninja"),
            command("bazel", ["build", "test"]),
            command("buck", ["build", "test"]),
            command("buck2", ["build", "test"]),
        ]
    )


def safe_npm() -> Matcher:
    """npm subcommands that read package data or run project scripts.

    ``npm run`` executes whatever package.json defines; leave this group out
    of rulesets where that is not acceptable.
    """
    return command(
        "npm",
        [
            "list",
            "ls",
            "view",
            "search",
            "outdated",
            "explain",
            "fund",
            "audit",
            "doctor",
            "config",
            "help",
            "version",
            "run",
            "test",
            "start",
            "build",
        ],
    )


GROUPS: dict[str, Callable[[], Matcher]] = {
    "read_only_git": read_only_git,
    "compilation": compilation,
    "safe_npm": safe_npm,
}


def extend(group: Matcher, *extra: Matcher) -> Matcher:
    return Or([group, *extra])


def default_ruleset() -> Ruleset:
    read_only_tools = Or(
        CommandName(name)
        for name in ("ls", "cat", "head", "tail", "grep", "rg", "find", "wc", "pwd", "which", "echo", "printf")
    )
    rules = [
        Rule(PipedToShell(), Outcome.DENY, "pipe_to_shell"),
        Rule(
            command(
                "git",
                [
                    "status",
                    "log",
                    "diff",
                    "show",
                    "blame",
                    "branch",
                    "tag",
                    "remote",
                    "describe",
                    "rev-parse",
                    "ls-files",
                    "ls-tree",
                    "cat-file",
                    "shortlog",
                    "annotate",
                ],
            ),
            Outcome.ALLOW,
            "git_read_only",
        ),
        Rule(
            command("cargo", ["build", "check", "test", "clippy", "fmt", "doc", "tree", "metadata"]),
            Outcome.ALLOW,
            "cargo_safe",
        ),
        Rule(command("npm", ["list", "view", "search", "audit", "outdated", "ls"]), Outcome.ALLOW, "npm_safe"),
        Rule(read_only_tools, Outcome.ALLOW, "read_only_tools"),
        Rule(command("go", ["build", "test", "vet", "fmt", "mod"]), Outcome.ALLOW, "go_safe"),
        Rule(CommandName("make"), Outcome.ALLOW, "make"),
        Rule(Or([CommandName("tsc"), CommandName("node"), CommandName("npx")]), Outcome.ALLOW, "typescript"),
        Rule(command("git", ["push", "reset", "rebase", "force-push"]), Outcome.DENY, "git_destructive"),
        Rule(
            Or(
                [
                    CommandName("sudo"),
                    CommandName("su"),
                    CommandName("chmod"),
                    CommandName("chown"),
                    command("rm", flags=["-rf"]),
                    command("rm", flags=["-r"]),
                    CommandName("mkfs"),
                    CommandName("dd"),
                ]
            ),
            Outcome.DENY,
            "system_destructive",
        ),
        Rule(
            Or([CommandName("curl"), CommandName("wget"), CommandName("nc"), CommandName("netcat")]),
            Outcome.DENY,
            "network_exfiltration",
        ),
    ]
    return Ruleset(rules=rules, ruleset_id="default")


__all__ = ["GROUPS", "compilation", "default_ruleset", "extend", "read_only_git", "safe_npm"]
