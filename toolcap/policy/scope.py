"""Directory scoping: canonical path resolution and subtree containment.

Containment is decided on resolved locations, never on the literal strings a
caller supplies, so a symlink cannot smuggle a working directory into (or out
of) a scoped tree. Resolution is delegated to a ``PathResolver`` so the
evaluation core can be exercised without touching the disk.
"""

from __future__ import annotations

import logging
import os
import posixpath
import threading
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Mapping, Protocol

logger = logging.getLogger(__name__)

_MAX_SYMLINK_HOPS = 40
DEFAULT_RESOLVE_TIMEOUT = 2.0


class CanonicalizationError(OSError):
    pass


@dataclass(frozen=True, slots=True)
class CanonicalPath:
    path: str

    @property
    def parts(self) -> tuple[str, ...]:
        return PurePosixPath(self.path).parts

    def __str__(self) -> str:
        return self.path


class PathResolver(Protocol):
    def resolve(self, path: str) -> str:
        ...


class FilesystemResolver:
    """Resolve against the real filesystem, optionally bounded by a timeout.

    A timed resolution runs on a daemon thread, so a call stuck on a hung
    mount is abandoned rather than keeping the interpreter alive.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    @staticmethod
    def _realpath(path: str) -> str:
        try:
            return os.path.realpath(path, strict=True)
        except (OSError, RuntimeError, ValueError) as exc:
            raise CanonicalizationError(f"cannot resolve {path!r}: {exc}") from exc

    def resolve(self, path: str) -> str:
        if not self.timeout:
            return self._realpath(path)

        result_box: list[str | None] = [None]
        error_box: list[CanonicalizationError | None] = [None]

        def _worker() -> None:
            try:
                result_box[0] = self._realpath(path)
            except CanonicalizationError as exc:
                error_box[0] = exc

        thread = threading.Thread(target=_worker, name="toolcap-resolve", daemon=True)
        thread.start()
        thread.join(timeout=self.timeout)

        if thread.is_alive():
            raise CanonicalizationError(f"timed out resolving {path!r} after {self.timeout}s")
        if error_box[0] is not None:
            raise error_box[0]
        return result_box[0]


class StaticResolver:
    """In-memory resolver: a set of existing directories plus a symlink table.

    ``links`` maps a link path to its target; relative targets are taken
    relative to the link's parent, as the kernel does.
    """

    def __init__(self, directories: set[str] | frozenset[str] = frozenset(), links: Mapping[str, str] | None = None):
        self.links = {posixpath.normpath(k): v for k, v in (links or {}).items()}
        known: set[str] = set()
        for directory in directories:
            pure = PurePosixPath(posixpath.normpath(directory))
            known.add(str(pure))
            known.update(str(parent) for parent in pure.parents)
        for link in self.links:
            known.update(str(parent) for parent in PurePosixPath(link).parents)
        self.directories = frozenset(known)

    def resolve(self, path: str) -> str:
        if not path.startswith("/"):
            raise CanonicalizationError(f"not an absolute path: {path!r}")
        pending = list(PurePosixPath(path).parts[1:])
        current = "/"
        hops = 0
        while pending:
            part = pending.pop(0)
            if part in ("", "."):
                continue
            if part == "..":
                current = posixpath.dirname(current) or "/"
                continue
            candidate = posixpath.join(current, part)
            if candidate in self.links:
                hops += 1
                if hops > _MAX_SYMLINK_HOPS:
                    raise CanonicalizationError(f"too many levels of symbolic links: {path!r}")
                target = self.links[candidate]
                if target.startswith("/"):
                    current = "/"
                pending = list(PurePosixPath(target).parts[1 if target.startswith("/") else 0:]) + pending
                continue
            if candidate not in self.directories and candidate not in self.links:
                raise CanonicalizationError(f"no such file or directory: {candidate!r}")
            current = candidate
        return current


def canonicalize(path: str, resolver: PathResolver) -> CanonicalPath:
    resolved = resolver.resolve(path)
    if not posixpath.isabs(resolved):
        raise CanonicalizationError(f"resolver returned a relative path for {path!r}: {resolved!r}")
    return CanonicalPath(posixpath.normpath(resolved))


def contains(root: CanonicalPath, candidate: CanonicalPath) -> bool:
    root_parts = root.parts
    candidate_parts = candidate.parts
    return candidate_parts[: len(root_parts)] == root_parts


def is_within(root: str, working_directory: str | None, resolver: PathResolver) -> bool:
    """True when ``working_directory`` really lives under ``root``.

    Any resolution failure is a non-match.
    """
    if not working_directory:
        return False
    try:
        return contains(canonicalize(root, resolver), canonicalize(working_directory, resolver))
    except CanonicalizationError as exc:
        logger.debug("directory scope check failed: %s", exc)
        return False
