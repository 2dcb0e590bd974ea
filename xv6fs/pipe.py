"""In-memory pipe with a bounded buffer shared by a read end and a write end."""

from __future__ import annotations

from .layout import FsError

PIPESIZE = 512


class Pipe:
    """A byte channel holding at most PIPESIZE unread bytes.

    Where a blocking reader or writer would wait, BlockingIOError is raised.
    """

    def __init__(self) -> None:
        self._buf = bytearray()
        self.readopen = True
        self.writeopen = True

    def __len__(self) -> int:
        return len(self._buf)

    @property
    def freed(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen

    def write(self, data: bytes) -> int:
        """Append as much of data as fits; returns the number of bytes taken."""
        if not self.readopen:
            raise FsError("pipe: read end closed")
        if not data:
            return 0
        room = PIPESIZE - len(self._buf)
        if room == 0:
            raise BlockingIOError("pipe: buffer full")
        chunk = bytes(data[:room])
        self._buf += chunk
        return len(chunk)

    def read(self, n: int) -> bytes:
        """Take up to n buffered bytes; b"" means the write end is closed."""
        if not self._buf:
            if self.writeopen:
                raise BlockingIOError("pipe: no data")
            return b""
        n = max(n, 0)
        chunk = bytes(self._buf[:n])
        del self._buf[:n]
        return chunk

    def close(self, writable: bool) -> None:
        """Close the write end if writable, else the read end."""
        if writable:
            self.writeopen = False
        else:
            self.readopen = False