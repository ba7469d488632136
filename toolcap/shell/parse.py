"""Conservative parser from command-line text to a ``ShellNode`` tree.

bashlex builds the bash syntax tree. Only simple commands joined by ``|``,
``&&``, ``||``, ``;`` and newlines are decomposed from it. Anything whose
effect cannot be bounded statically (substitutions, expansions,
here-documents, background jobs, compound commands) becomes an ``Opaque``
node holding the source fragment, so the caller can still reason about it
conservatively. Input bashlex rejects is opaque as a whole. ``parse`` never
raises.
"""

from __future__ import annotations

import logging

import bashlex
import bashlex.errors

from .model import AndIf, Command, Opaque, OrIf, Pipeline, Sequence, ShellNode, Simple, iter_opaque

logger = logging.getLogger(__name__)

_WORD_EXPANSIONS = {
    "commandsubstitution": "command substitution",
    "processsubstitution": "process substitution",
    "parameter": "parameter expansion",
}
_HEREDOC = frozenset({"<<", "<<-"})
_SEPARATORS = frozenset({";", "\n"})
_COMPOUND_KINDS = frozenset({"if", "for", "while", "until", "function"})
# bashlex reads these as plain words although bash treats them as keywords.
_KEYWORDS = frozenset({"[[", "case", "coproc", "select", "time"})


class _RestOfInput(Exception):
    """Raised when the input from the enclosing command line onwards must be opaque."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class _Builder:
    def __init__(self, source: str):
        self.src = source

    def _raw(self, node) -> str:
        start, end = node.pos
        return self.src[start:end].strip()

    def build(self, node) -> ShellNode:
        kind = node.kind
        if kind == "list":
            return self._list(node.parts)
        if kind == "pipeline":
            return self._pipeline(node)
        if kind == "command":
            return self._command(node)
        if kind == "compound":
            return self._compound(node)
        if kind in _COMPOUND_KINDS:
            return Opaque(self._raw(node), f"compound command '{kind}'")
        return Opaque(self._raw(node), f"unsupported construct '{kind}'")

    def _list(self, parts) -> ShellNode:
        items: list[ShellNode] = []
        group: list = []
        for part in parts:
            if part.kind != "operator" or part.op in ("&&", "||"):
                group.append(part)
                continue
            if part.op == "&":
                if group:
                    start = group[0].pos[0]
                    items.append(Opaque(self.src[start:part.pos[1]].strip(), "background execution"))
            elif part.op not in _SEPARATORS:
                raise _RestOfInput(f"unexpected '{part.op}'")
            elif group:
                items.append(self._and_or(group))
            group = []
        if group:
            items.append(self._and_or(group))

        if len(items) == 1:
            return items[0]
        return Sequence(tuple(items))

    def _and_or(self, group) -> ShellNode:
        left = self.build(group[0])
        for op, operand in zip(group[1::2], group[2::2]):
            right = self.build(operand)
            left = AndIf(left, right) if op.op == "&&" else OrIf(left, right)
        return left

    def _pipeline(self, node) -> ShellNode:
        nodes: list[ShellNode] = []
        for part in node.parts:
            if part.kind == "pipe":
                continue
            if part.kind == "reservedword":
                return Opaque(self._raw(node), f"compound command '{part.word}'")
            nodes.append(self.build(part))
        if len(nodes) == 1:
            return nodes[0]
        return Pipeline(tuple(nodes))

    def _compound(self, node) -> ShellNode:
        opener = getattr(node.list[0], "word", "") if node.list else ""
        if opener == "(":
            return Opaque(self._raw(node), "subshell")
        if opener == "{":
            return Opaque(self._raw(node), "brace group")
        return Opaque(self._raw(node), "compound command")

    def _command(self, node) -> ShellNode:
        words: list[str] = []
        reason = ""
        for part in node.parts:
            if part.kind == "word":
                if not words and self._raw(part) in _KEYWORDS:
                    return Opaque(self._raw(node), f"compound command '{part.word}'")
                reason = reason or _expansion(part) or _dollar_quoting(self._raw(part))
                words.append(part.word)
            elif part.kind == "assignment":
                reason = reason or "variable assignment"
            elif part.kind == "redirect":
                if part.type in _HEREDOC:
                    raise _RestOfInput("here-document")
                if part.type == "<<<":
                    reason = reason or "here-string"
                # An integer target is a descriptor duplication (2>&1).
                if not isinstance(part.output, int):
                    reason = reason or _expansion(part.output)
            else:
                reason = reason or f"unsupported construct '{part.kind}'"

        if reason:
            return Opaque(self._raw(node), reason)
        if not words:
            return Opaque(self._raw(node), "redirection without command")
        return Simple(Command(words[0], tuple(words[1:])))


def _expansion(word) -> str:
    for part in getattr(word, "parts", None) or ():
        if part.kind == "tilde":
            continue
        return _WORD_EXPANSIONS.get(part.kind, f"{part.kind} expansion")
    return ""


def _dollar_quoting(raw: str) -> str:
    if "$'" in raw or '$"' in raw:
        return "dollar quoting"
    return ""


def _parse(source: str) -> ShellNode:
    try:
        trees = bashlex.parse(source)
    except bashlex.errors.ParsingError as exc:
        logger.debug("bashlex rejected %r: %s", source, exc)
        return Opaque(source.strip(), "syntax error")
    except Exception as exc:  # bashlex raises NotImplementedError and others on constructs it lacks
        logger.debug("bashlex cannot parse %r: %s", source, exc)
        return Opaque(source.strip(), "unsupported syntax")

    builder = _Builder(source)
    items: list[ShellNode] = []
    for tree in trees:
        try:
            items.append(builder.build(tree))
        except _RestOfInput as rest:
            items.append(Opaque(source[tree.pos[0]:].strip(), rest.reason))
            break

    if len(items) == 1:
        return items[0]
    return Sequence(tuple(items))


def parse(source: str) -> ShellNode:
    """Parse ``source`` into a tree; total and deterministic."""
    if not source.strip():
        return Sequence(())
    node = _parse(source)
    if logger.isEnabledFor(logging.DEBUG):
        for fragment in iter_opaque(node):
            logger.debug("opaque fragment (%s): %r", fragment.reason, fragment.raw)
    return node
