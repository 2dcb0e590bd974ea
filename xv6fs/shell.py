"""Parser for shell command lines: pipes, lists, background jobs and redirection."""

from __future__ import annotations

from dataclasses import dataclass, field

from .layout import OpenFlags

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"
MAXARGS = 10


class ShellSyntaxError(ValueError):
    """A command line could not be parsed."""


@dataclass
class ExecCmd:
    argv: list[str] = field(default_factory=list)


@dataclass
class RedirCmd:
    cmd: Command
    file: str
    mode: OpenFlags
    fd: int


@dataclass
class PipeCmd:
    left: Command
    right: Command


@dataclass
class ListCmd:
    left: Command
    right: Command


@dataclass
class BackCmd:
    cmd: Command


Command = ExecCmd | RedirCmd | PipeCmd | ListCmd | BackCmd


class Parser:
    """Recursive-descent parser over one command line."""

    def __init__(self, line: str) -> None:
        self.s = line.split("\0", 1)[0]
        self.pos = 0

    @property
    def rest(self) -> str:
        return self.s[self.pos:]

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.s) and self.s[self.pos] in WHITESPACE:
            self.pos += 1

    def gettoken(self) -> tuple[str, str]:
        """Consume the next token; returns (kind, text).

        kind is "" at the end of the line, "a" for a word, "+" for ">>",
        and the symbol itself otherwise.
        """
        self._skip_whitespace()
        start = self.pos
        if self.pos >= len(self.s):
            kind = ""
        else:
            c = self.s[self.pos]
            if c in "|();&<":
                kind = c
                self.pos += 1
            elif c == ">":
                kind = ">"
                self.pos += 1
                if self.pos < len(self.s) and self.s[self.pos] == ">":
                    kind = "+"
                    self.pos += 1
            else:
                kind = "a"
                while (
                    self.pos < len(self.s)
                    and self.s[self.pos] not in WHITESPACE
                    and self.s[self.pos] not in SYMBOLS
                ):
                    self.pos += 1
        text = self.s[start:self.pos]
        self._skip_whitespace()
        return kind, text

    def peek(self, toks: str) -> bool:
        """Skip whitespace and report whether the next character is in toks."""
        self._skip_whitespace()
        return self.pos < len(self.s) and self.s[self.pos] in toks

    def parseline(self) -> Command:
        cmd = self.parsepipe()
        while self.peek("&"):
            self.gettoken()
            cmd = BackCmd(cmd)
        if self.peek(";"):
            self.gettoken()
            cmd = ListCmd(cmd, self.parseline())
        return cmd

    def parsepipe(self) -> Command:
        cmd = self.parseexec()
        if self.peek("|"):
            self.gettoken()
            cmd = PipeCmd(cmd, self.parsepipe())
        return cmd

    def parseredirs(self, cmd: Command) -> Command:
        while self.peek("<>"):
            tok, _ = self.gettoken()
            kind, word = self.gettoken()
            if kind != "a":
                raise ShellSyntaxError("missing file for redirection")
            if tok == "<":
                cmd = RedirCmd(cmd, word, OpenFlags.RDONLY, 0)
            elif tok == ">":
                cmd = RedirCmd(
                    cmd, word, OpenFlags.WRONLY | OpenFlags.CREATE | OpenFlags.TRUNC, 1
                )
            else:
                cmd = RedirCmd(cmd, word, OpenFlags.WRONLY | OpenFlags.CREATE, 1)
        return cmd

    def parseblock(self) -> Command:
        if not self.peek("("):
            raise ShellSyntaxError("parseblock")
        self.gettoken()
        cmd = self.parseline()
        if not self.peek(")"):
            raise ShellSyntaxError("syntax - missing )")
        self.gettoken()
        return self.parseredirs(cmd)

    def parseexec(self) -> Command:
        if self.peek("("):
            return self.parseblock()
        exec_cmd = ExecCmd()
        ret = self.parseredirs(exec_cmd)
        while not self.peek("|)&;"):
            kind, word = self.gettoken()
            if kind == "":
                break
            if kind != "a":
                raise ShellSyntaxError("syntax")
            exec_cmd.argv.append(word)
            if len(exec_cmd.argv) >= MAXARGS:
                raise ShellSyntaxError("too many args")
            ret = self.parseredirs(ret)
        return ret


def parsecmd(line: str) -> Command:
    """Parse a whole command line into a command tree."""
    parser = Parser(line)
    cmd = parser.parseline()
    parser.peek("")
    if parser.pos != len(parser.s):
        raise ShellSyntaxError(f"leftovers: {parser.rest}")
    return cmd