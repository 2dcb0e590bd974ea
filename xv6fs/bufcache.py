"""Block device and buffer cache with least-recently-used recycling."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from .layout import BSIZE, NBUF, FsError, FsPanic


class BlockDevice:
    """A disk held in memory as a sequence of BSIZE blocks."""

    def __init__(self, image: bytes | bytearray = b"") -> None:
        if len(image) % BSIZE:
            raise FsError(f"image size {len(image)} is not a multiple of {BSIZE}")
        self._data = bytearray(image)
        self.reads = 0
        self.writes = 0

    @classmethod
    def blank(cls, nblocks: int) -> BlockDevice:
        if nblocks < 0:
            raise ValueError("block count must not be negative")
        return cls(bytes(nblocks * BSIZE))

    @classmethod
    def from_file(cls, path: str | Path) -> BlockDevice:
        return cls(Path(path).read_bytes())

    def save(self, path: str | Path) -> None:
        Path(path).write_bytes(bytes(self._data))

    @property
    def nblocks(self) -> int:
        return len(self._data) // BSIZE

    def _span(self, blockno: int) -> slice:
        if not 0 <= blockno < self.nblocks:
            raise FsError(f"block {blockno} out of range")
        return slice(blockno * BSIZE, (blockno + 1) * BSIZE)

    def read(self, blockno: int) -> bytes:
        span = self._span(blockno)
        self.reads += 1
        return bytes(self._data[span])

    def write(self, blockno: int, data: bytes | bytearray) -> None:
        span = self._span(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes")
        self.writes += 1
        self._data[span] = data


@dataclass(eq=False)
class Buf:
    """A cached copy of one disk block."""

    blockno: int | None = None
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    refcnt: int = 0
    locked: bool = False


class BufferCache:
    """Fixed pool of buffers; unreferenced buffers are recycled least recent first."""

    def __init__(self, device: BlockDevice, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.device = device
        # Most recently used first.
        self._lru = [Buf() for _ in range(nbuf)]

    def _get(self, blockno: int) -> Buf:
        buf = next((b for b in self._lru if b.blockno == blockno), None)
        if buf is not None:
            if buf.locked:
                raise FsPanic(f"bget: block {blockno} is already held")
            buf.refcnt += 1
        else:
            buf = next((b for b in reversed(self._lru) if b.refcnt == 0), None)
            if buf is None:
                raise FsPanic("bget: no buffers")
            buf.blockno = blockno
            buf.valid = False
            buf.refcnt = 1
        buf.locked = True
        return buf

    def bread(self, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of blockno."""
        buf = self._get(blockno)
        if not buf.valid:
            buf.data[:] = self.device.read(blockno)
            buf.valid = True
        return buf

    def bwrite(self, buf: Buf) -> None:
        if not buf.locked:
            raise FsPanic("bwrite")
        self.device.write(buf.blockno, buf.data)

    def brelse(self, buf: Buf) -> None:
        if not buf.locked:
            raise FsPanic("brelse")
        buf.locked = False
        buf.refcnt -= 1
        if buf.refcnt == 0:
            self._lru.remove(buf)
            self._lru.insert(0, buf)

    def bpin(self, buf: Buf) -> None:
        buf.refcnt += 1

    def bunpin(self, buf: Buf) -> None:
        buf.refcnt -= 1

    @contextmanager
    def block(self, blockno: int) -> Iterator[Buf]:
        """Hold the buffer for blockno for the duration of the block."""
        buf = self.bread(blockno)
        try:
            yield buf
        finally:
            self.brelse(buf)