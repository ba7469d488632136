import bashlex
import pytest

from toolcap.shell.model import (
    AndIf,
    Command,
    Opaque,
    OrIf,
    Pipeline,
    Sequence,
    Simple,
    iter_commands,
    iter_opaque,
)
from toolcap.shell.parse import parse


def _simple(name, *args):
    return Simple(Command(name, tuple(args)))


def test_simple_command():
    assert parse("git status") == _simple("git", "status")


def test_command_flags_and_subcommand():
    command = parse("git push --force origin main").command
    assert command.subcommand == "push"
    assert command.flags == frozenset({"--force"})
    assert command.has_flag("--force")


def test_pipeline_strips_quotes():
    node = parse("find . -name '*.ts' | xargs grep 'interface'")
    assert node == Pipeline((_simple("find", ".", "-name", "*.ts"), _simple("xargs", "grep", "interface")))


def test_and_or_is_left_associative():
    assert parse("a && b || c") == OrIf(AndIf(_simple("a"), _simple("b")), _simple("c"))


def test_pipes_bind_tighter_than_and_or():
    node = parse("a | b && c | d")
    assert node == AndIf(Pipeline((_simple("a"), _simple("b"))), Pipeline((_simple("c"), _simple("d"))))


def test_sequence_from_semicolons_and_newlines():
    assert parse("cd src; make") == Sequence((_simple("cd", "src"), _simple("make")))
    assert parse("ls\npwd") == Sequence((_simple("ls"), _simple("pwd")))
    assert parse("echo ok;") == _simple("echo", "ok")


def test_redirections_are_dropped_from_arguments():
    assert parse("cat < in > out") == _simple("cat")
    assert parse("ls 2>&1 | grep x") == Pipeline((_simple("ls"), _simple("grep", "x")))


def test_quoting_and_escapes():
    assert parse("echo 'a | b'") == _simple("echo", "a | b")
    assert parse('grep "x && y" log') == _simple("grep", "x && y", "log")
    assert parse("echo '$HOME'") == _simple("echo", "$HOME")
    assert len(parse(r"ls my\ file").command.args) == 1
    assert parse(r"echo price \$5").command.name == "echo"


def test_comments_are_ignored():
    assert parse("ls # list things") == _simple("ls")


@pytest.mark.parametrize(
    "source,reason",
    [
        ("echo $(whoami)", "command substitution"),
        ("echo `date`", "command substitution"),
        ("echo $HOME", "parameter expansion"),
        ('echo "$HOME"', "parameter expansion"),
        ("echo ${HOME}", "parameter expansion"),
        ("diff <(ls a) <(ls b)", "process substitution"),
        ('cat <<< "hi"', "here-string"),
        ("FOO=bar ls", "variable assignment"),
    ],
)
def test_unanalyzable_simple_commands_are_opaque(source, reason):
    node = parse(source)
    assert isinstance(node, Opaque)
    assert node.reason == reason
    assert node.raw == source


def test_arithmetic_expansion_is_opaque():
    node = parse("echo $((1 + 2))")
    assert isinstance(node, Opaque)
    assert node.raw == "echo $((1 + 2))"


def test_dollar_quoting_is_opaque():
    assert isinstance(parse(r"echo $'\x72\x6d'"), Opaque)


def test_unterminated_quote_is_opaque():
    node = parse('echo "unterminated')
    assert isinstance(node, Opaque)
    assert node.raw == 'echo "unterminated'


def test_heredoc_swallows_rest_of_input():
    source = "cat <<EOF\nhello\nEOF\necho done"
    assert parse(source) == Opaque(source, "here-document")

    source = "cat <<EOF\nx\nEOF\nrm -rf /"
    assert parse(source) == Opaque(source, "here-document")


def test_background_job_is_opaque():
    assert parse("sleep 10 &") == Opaque("sleep 10 &", "background execution")


def test_subshell_and_compound_commands_are_opaque():
    assert parse("(cd /tmp && rm -rf x)") == Opaque("(cd /tmp && rm -rf x)", "subshell")
    assert parse("(rm -rf /)") == Opaque("(rm -rf /)", "subshell")
    assert parse("if true; then ls; fi") == Opaque("if true; then ls; fi", "compound command 'if'")

    node = parse("for f in *.py; do rm $f; done; git status")
    assert isinstance(node, Sequence)
    loop, status = node.nodes
    assert isinstance(loop, Opaque)
    assert loop.reason == "compound command 'for'"
    assert loop.raw.startswith("for f in")
    assert status == _simple("git", "status")


@pytest.mark.parametrize(
    "source",
    [
        "git status && ",
        ";; ls",
        "echo ok)",
        "ls\n&& rm -rf /",
        r"echo \$(rm -rf /)",
    ],
)
def test_syntax_errors_make_the_whole_input_opaque(source):
    node = parse(source)
    assert isinstance(node, Opaque)
    assert node.raw == source.strip()


def test_comment_hides_the_rest_of_the_line():
    assert parse("ls #; rm -rf /") == _simple("ls")


def test_empty_input():
    assert parse("") == Sequence(())
    assert parse("   \n  ") == Sequence(())


def test_parse_is_deterministic():
    samples = [
        "git status",
        "a | b && c || d; e",
        "echo $(id) | sh",
        "cat <<EOF\nx\nEOF",
        "if a; then b; fi && c",
        'echo "open',
    ]
    for source in samples:
        assert parse(source) == parse(source)


def test_iterators_walk_in_written_order():
    node = parse("a | b && c; d $(x)")
    assert [command.name for command in iter_commands(node)] == ["a", "b", "c"]
    assert [fragment.raw for fragment in iter_opaque(node)] == ["d $(x)"]


def test_unsupported_bashlex_construct_is_opaque(monkeypatch):
    def refuse(source):
        raise NotImplementedError("arithmetic expansion")

    monkeypatch.setattr(bashlex, "parse", refuse)
    assert parse(" ls ") == Opaque("ls", "unsupported syntax")
