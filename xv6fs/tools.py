"""Everyday commands run against a session: cat, echo, grep, ls, mkdir, rm and wc."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import BinaryIO

from .layout import DIRENT_SIZE, DIRSIZ, Dirent, FsError, InodeType, OpenFlags
from .sysfile import Session, SyscallError

_CHUNK = 512
_GREP_BUF = 1024
_LS_BUF = 512
# NUL counts as a separator too: it is the terminator of the separator set.
_WORD_SEPARATORS = frozenset(b" \r\t\n\v\0")


def _emit(stream: BinaryIO, text: str) -> None:
    stream.write(text.encode("utf-8", "surrogateescape"))


def _chunks(session: Session, fd: int, size: int) -> Iterator[bytes]:
    while data := session.read(fd, size):
        yield data


# Regular expressions: c matches c, . matches any character,
# ^ anchors the start, $ anchors the end, c* matches zero or more c.


def match(re: str, text: str) -> bool:
    """True if the pattern matches anywhere in text."""
    if re.startswith("^"):
        return matchhere(re[1:], text)
    while True:
        if matchhere(re, text):
            return True
        if not text:
            return False
        text = text[1:]


def matchhere(re: str, text: str) -> bool:
    """True if the pattern matches at the start of text."""
    if not re:
        return True
    if len(re) > 1 and re[1] == "*":
        return matchstar(re[0], re[2:], text)
    if re == "$":
        return text == ""
    if text and (re[0] == "." or re[0] == text[0]):
        return matchhere(re[1:], text[1:])
    return False


def matchstar(c: str, re: str, text: str) -> bool:
    """True if zero or more c followed by the pattern match at the start of text."""
    while True:
        if matchhere(re, text):
            return True
        if not text:
            return False
        ch, text = text[0], text[1:]
        if not (ch == c or c == "."):
            return False


def grep(session: Session, pattern: str, fd: int, out: BinaryIO) -> None:
    """Write every complete line read from fd that matches pattern."""
    regex = pattern.encode("utf-8", "surrogateescape").decode("latin-1")
    buf = bytearray()
    while True:
        room = _GREP_BUF - len(buf) - 1
        if room <= 0:
            break
        try:
            data = session.read(fd, room)
        except SyscallError:
            break
        if not data:
            break
        buf += data
        *lines, rest = buf.split(b"\n")
        for line in lines:
            if match(regex, bytes(line).decode("latin-1")):
                out.write(bytes(line) + b"\n")
        buf = bytearray(rest)


def _copy(session: Session, fd: int, out: BinaryIO) -> None:
    try:
        for chunk in _chunks(session, fd, _CHUNK):
            out.write(chunk)
    except SyscallError as exc:
        raise SyscallError("cat: read error") from exc


def cat(session: Session, paths: Sequence[str], out: BinaryIO) -> None:
    """Copy the named files, or descriptor 0 when none are named, to out."""
    if not paths:
        _copy(session, 0, out)
        return
    for path in paths:
        try:
            fd = session.open(path, OpenFlags.RDONLY)
        except FsError:
            raise SyscallError(f"cat: cannot open {path}") from None
        try:
            _copy(session, fd, out)
        finally:
            session.close(fd)


def echo(args: Sequence[str]) -> str:
    """The arguments separated by spaces and ended by a newline."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def wc_counts(data: bytes) -> tuple[int, int, int]:
    """Return (lines, words, characters) of data."""
    words = 0
    inword = False
    for byte in data:
        if byte in _WORD_SEPARATORS:
            inword = False
        elif not inword:
            words += 1
            inword = True
    return data.count(b"\n"), words, len(data)


def _wc_fd(session: Session, fd: int, name: str, out: BinaryIO) -> int:
    try:
        data = b"".join(_chunks(session, fd, _CHUNK))
    except SyscallError:
        _emit(out, "wc: read error\n")
        return 1
    lines, words, chars = wc_counts(data)
    _emit(out, f"{lines} {words} {chars} {name}\n")
    return 0


def wc(session: Session, paths: Sequence[str], out: BinaryIO) -> int:
    """Count the named files, or descriptor 0; returns the exit status."""
    if not paths:
        return _wc_fd(session, 0, "", out)
    for path in paths:
        try:
            fd = session.open(path, OpenFlags.RDONLY)
        except FsError:
            _emit(out, f"wc: cannot open {path}\n")
            return 1
        try:
            status = _wc_fd(session, fd, path, out)
        finally:
            session.close(fd)
        if status:
            return status
    return 0


def fmtname(path: str) -> str:
    """Final path element, padded with spaces to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _ls_line(path: str, st) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}\n"


def _ls_one(session: Session, path: str, out: BinaryIO, err: BinaryIO) -> None:
    try:
        fd = session.open(path, OpenFlags.RDONLY)
    except FsError:
        _emit(err, f"ls: cannot open {path}\n")
        return
    try:
        try:
            st = session.fstat(fd)
        except FsError:
            _emit(err, f"ls: cannot stat {path}\n")
            return
        if st.type in (InodeType.DEVICE, InodeType.FILE):
            _emit(out, _ls_line(path, st))
        elif st.type == InodeType.DIR:
            if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _LS_BUF:
                _emit(out, "ls: path too long\n")
                return
            while len(raw := session.read(fd, DIRENT_SIZE)) == DIRENT_SIZE:
                de = Dirent.unpack(raw)
                if de.inum == 0:
                    continue
                name = f"{path}/{de.name}"
                try:
                    entry = session.stat(name)
                except FsError:
                    _emit(out, f"ls: cannot stat {name}\n")
                    continue
                _emit(out, _ls_line(name, entry))
    finally:
        session.close(fd)


def ls(session: Session, paths: Sequence[str], out: BinaryIO, err: BinaryIO) -> int:
    """List files and directory contents; "." when no path is given."""
    for path in paths or ["."]:
        _ls_one(session, path, out, err)
    return 0


def mkdir(session: Session, paths: Sequence[str], err: BinaryIO) -> int:
    """Create directories, stopping at the first failure."""
    if not paths:
        _emit(err, "Usage: mkdir files...\n")
        return 1
    for path in paths:
        try:
            session.mkdir(path)
        except FsError:
            _emit(err, f"mkdir: {path} failed to create\n")
            break
    return 0


def rm(session: Session, paths: Sequence[str], err: BinaryIO) -> int:
    """Unlink files, stopping at the first failure."""
    if not paths:
        _emit(err, "Usage: rm files...\n")
        return 1
    for path in paths:
        try:
            session.unlink(path)
        except FsError:
            _emit(err, f"rm: {path} failed to delete\n")
            break
    return 0


def atoi(s: str) -> int:
    """Value of the leading decimal digits of s; 0 if there are none."""
    n = 0
    for ch in s:
        if not "0" <= ch <= "9":
            break
        n = n * 10 + ord(ch) - ord("0")
    return n