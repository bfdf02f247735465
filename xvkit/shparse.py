"""Parser for the shell's command language: words, redirections, pipes, lists and background jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Union

from xvkit.cstring import O_CREATE, O_RDONLY, O_WRONLY, OpenFlag

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"
MAXARGS = 10


class ShellSyntaxError(ValueError):
    """Raised when a command line cannot be parsed."""


@dataclass
class ExecCmd:
    """Run a program with its arguments."""

    argv: list[str] = field(default_factory=list)


@dataclass
class RedirCmd:
    """Run a command with one file descriptor redirected to a file."""

    cmd: "Command"
    file: str
    mode: OpenFlag
    fd: int


@dataclass
class PipeCmd:
    """Connect the output of left to the input of right."""

    left: "Command"
    right: "Command"


@dataclass
class ListCmd:
    """Run left, wait for it, then run right."""

    left: "Command"
    right: "Command"


@dataclass
class BackCmd:
    """Run a command without waiting for it."""

    cmd: "Command"


Command = Union[ExecCmd, RedirCmd, PipeCmd, ListCmd, BackCmd]


class Token(NamedTuple):
    kind: str
    text: str


class Scanner:
    """Splits a command line into tokens.

    Token kinds are the symbol itself for ``| ( ) ; & < >``, ``">>"`` for
    append redirection, ``WORD`` for anything else and ``END`` at the end.
    """

    END = ""
    WORD = "a"
    APPEND = ">>"

    def __init__(self, line: str) -> None:
        nul = line.find("\0")
        self.line = line if nul < 0 else line[:nul]
        self.pos = 0

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.line) and self.line[self.pos] in WHITESPACE:
            self.pos += 1

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.line)

    @property
    def rest(self) -> str:
        return self.line[self.pos:]

    def peek(self, toks: str) -> bool:
        """Skip whitespace and report whether the next character is one of toks."""
        self._skip_whitespace()
        return not self.at_end and self.line[self.pos] in toks

    def next_token(self) -> Token:
        """Consume and return the next token."""
        self._skip_whitespace()
        start = self.pos
        if self.at_end:
            kind = self.END
        else:
            c = self.line[self.pos]
            if c in "|();&<":
                self.pos += 1
                kind = c
            elif c == ">":
                self.pos += 1
                if not self.at_end and self.line[self.pos] == ">":
                    self.pos += 1
                    kind = self.APPEND
                else:
                    kind = ">"
            else:
                while not self.at_end and self.line[self.pos] not in WHITESPACE + SYMBOLS:
                    self.pos += 1
                kind = self.WORD
        text = self.line[start:self.pos]
        self._skip_whitespace()
        return Token(kind, text)


def _parse_line(sc: Scanner) -> Command:
    cmd = _parse_pipe(sc)
    while sc.peek("&"):
        sc.next_token()
        cmd = BackCmd(cmd)
    if sc.peek(";"):
        sc.next_token()
        cmd = ListCmd(cmd, _parse_line(sc))
    return cmd


def _parse_pipe(sc: Scanner) -> Command:
    cmd = _parse_exec(sc)
    if sc.peek("|"):
        sc.next_token()
        cmd = PipeCmd(cmd, _parse_pipe(sc))
    return cmd


def _parse_redirs(cmd: Command, sc: Scanner) -> Command:
    while sc.peek("<>"):
        tok = sc.next_token()
        target = sc.next_token()
        if target.kind != Scanner.WORD:
            raise ShellSyntaxError("missing file for redirection")
        if tok.kind == "<":
            cmd = RedirCmd(cmd, target.text, O_RDONLY, 0)
        else:
            cmd = RedirCmd(cmd, target.text, O_WRONLY | O_CREATE, 1)
    return cmd


def _parse_block(sc: Scanner) -> Command:
    if not sc.peek("("):
        raise ShellSyntaxError("parseblock")
    sc.next_token()
    cmd = _parse_line(sc)
    if not sc.peek(")"):
        raise ShellSyntaxError("syntax - missing )")
    sc.next_token()
    return _parse_redirs(cmd, sc)


def _parse_exec(sc: Scanner) -> Command:
    if sc.peek("("):
        return _parse_block(sc)
    cmd = ExecCmd()
    ret = _parse_redirs(cmd, sc)
    while not sc.peek("|)&;"):
        tok = sc.next_token()
        if tok.kind == Scanner.END:
            break
        if tok.kind != Scanner.WORD:
            raise ShellSyntaxError("syntax")
        cmd.argv.append(tok.text)
        if len(cmd.argv) >= MAXARGS:
            raise ShellSyntaxError("too many args")
        ret = _parse_redirs(ret, sc)
    return ret


def parse_command(line: str) -> Command:
    """Parse a whole command line into a command tree."""
    sc = Scanner(line)
    cmd = _parse_line(sc)
    sc.peek("")
    if not sc.at_end:
        raise ShellSyntaxError(f"leftovers: {sc.rest}")
    return cmd