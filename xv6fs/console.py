"""Console device: line-edited keyboard input and character output."""

from __future__ import annotations

from collections.abc import Callable

INPUT_BUF_SIZE = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


CTRL_D = _ctrl("D")
CTRL_H = _ctrl("H")
CTRL_P = _ctrl("P")
CTRL_U = _ctrl("U")
DEL = 0x7F
_NEWLINE = ord("\n")


class Console:
    """Collects typed characters into lines; echoed and written bytes go to output."""

    def __init__(self, procdump: Callable[[], None] | None = None) -> None:
        self._buf = bytearray(INPUT_BUF_SIZE)
        self.r = 0  # read index
        self.w = 0  # write index: end of committed input
        self.e = 0  # edit index
        self.output = bytearray()
        self._procdump = procdump

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.output += b"\b \b"
        else:
            self.output.append(c & 0xFF)

    def _at(self, index: int) -> int:
        return self._buf[index % INPUT_BUF_SIZE]

    def interrupt(self, c: int | str) -> None:
        """Handle one typed character."""
        if isinstance(c, str):
            c = ord(c)
        if c == CTRL_P:
            if self._procdump is not None:
                self._procdump()
        elif c == CTRL_U:
            while self.e != self.w and self._at(self.e - 1) != _NEWLINE:
                self.e -= 1
                self._putc(BACKSPACE)
        elif c in (CTRL_H, DEL):
            if self.e != self.w:
                self.e -= 1
                self._putc(BACKSPACE)
        elif c != 0 and self.e - self.r < INPUT_BUF_SIZE:
            if c == ord("\r"):
                c = _NEWLINE
            self._putc(c)
            self._buf[self.e % INPUT_BUF_SIZE] = c & 0xFF
            self.e += 1
            if c in (_NEWLINE, CTRL_D) or self.e - self.r == INPUT_BUF_SIZE:
                self.w = self.e

    def read(self, n: int) -> bytes:
        """Read up to n bytes of committed input, stopping after a newline.

        Returns b"" at end of input (a lone ^D). Raises BlockingIOError when
        no committed input is available.
        """
        out = bytearray()
        target = n
        while n > 0:
            if self.r == self.w:
                if not out:
                    raise BlockingIOError("console: no input")
                break
            c = self._at(self.r)
            self.r += 1
            if c == CTRL_D:
                if n < target:
                    # Keep ^D so the next read returns end of input.
                    self.r -= 1
                break
            out.append(c)
            n -= 1
            if c == _NEWLINE:
                break
        return bytes(out)

    def write(self, data: bytes) -> int:
        self.output += data
        return len(data)