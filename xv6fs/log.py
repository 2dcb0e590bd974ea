"""Write-ahead log giving crash-safe multi-block transactions."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from contextlib import contextmanager

from .bufcache import Buf, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, FsError, FsPanic

_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class Log:
    """Groups block writes into transactions committed through an on-disk log.

    Block ``start`` holds the header; the following blocks hold logged copies.
    """

    def __init__(self, cache: BufferCache, start: int, size: int) -> None:
        if _HEADER.size >= BSIZE:
            raise FsPanic("initlog: too big logheader")
        self.cache = cache
        self.start = start
        self.size = size
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self.recover()

    def _read_head(self) -> None:
        with self.cache.block(self.start) as buf:
            n, *blocks = _HEADER.unpack_from(buf.data)
        if not 0 <= n <= LOGSIZE:
            raise FsError(f"corrupt log header: {n} entries")
        self.blocks = blocks[:n]

    def _write_head(self) -> None:
        n = len(self.blocks)
        with self.cache.block(self.start) as buf:
            struct.pack_into(f"<i{n}i", buf.data, 0, n, *self.blocks)
            self.cache.bwrite(buf)

    def _install(self, recovering: bool) -> None:
        for tail, blockno in enumerate(self.blocks):
            with self.cache.block(self.start + tail + 1) as lbuf, \
                    self.cache.block(blockno) as dbuf:
                dbuf.data[:] = lbuf.data
                self.cache.bwrite(dbuf)
                if not recovering:
                    self.cache.bunpin(dbuf)

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self.blocks):
            with self.cache.block(self.start + tail + 1) as to, \
                    self.cache.block(blockno) as src:
                to.data[:] = src.data
                self.cache.bwrite(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()
            self._install(recovering=False)
            self.blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction left in the log, then clear it."""
        self._read_head()
        self._install(recovering=True)
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        if self.committing:
            raise FsPanic("begin_op: log is committing")
        if len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE:
            raise FsPanic("begin_op: no log space left for another operation")
        self.outstanding += 1

    def end_op(self) -> None:
        if self.outstanding < 1:
            raise FsPanic("end_op outside of trans")
        self.outstanding -= 1
        if self.committing:
            raise FsPanic("log.committing")
        if self.outstanding == 0:
            self.committing = True
            try:
                self._commit()
            finally:
                self.committing = False

    def log_write(self, buf: Buf) -> None:
        """Record that buf was modified; it reaches disk at commit."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise FsPanic("too big a transaction")
        if self.outstanding < 1:
            raise FsPanic("log_write outside of trans")
        if buf.blockno not in self.blocks:
            self.blocks.append(buf.blockno)
            self.cache.bpin(buf)

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()