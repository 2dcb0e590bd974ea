"""First-fit free-list memory allocator over a simulated, growable heap."""

from __future__ import annotations

from dataclasses import dataclass

HEADER_SIZE = 16
MIN_UNITS = 4096


@dataclass
class _Header:
    ptr: int
    size: int


class Allocator:
    """Hands out addresses from a heap grown in chunks of at least MIN_UNITS units.

    Each unit is HEADER_SIZE bytes; every block starts with a header unit.
    ``limit`` caps the heap size in bytes; None means unbounded.
    """

    def __init__(self, start: int = 0x10000, limit: int | None = None) -> None:
        if start % HEADER_SIZE or start < 2 * HEADER_SIZE:
            raise ValueError("heap start must be header aligned and above the base")
        self._base = start - HEADER_SIZE
        self._start = start
        self._brk = start
        self._limit = limit
        self._headers: dict[int, _Header] = {}
        self._freep: int | None = None
        self._allocated: set[int] = set()

    @property
    def heap_size(self) -> int:
        return self._brk - self._start

    @property
    def free_units(self) -> int:
        """Total units on the free list."""
        if self._freep is None:
            return 0
        total = 0
        p = self._headers[self._base].ptr
        while p != self._base:
            total += self._headers[p].size
            p = self._headers[p].ptr
        return total

    def _sbrk(self, nbytes: int) -> int | None:
        if self._limit is not None and self.heap_size + nbytes > self._limit:
            return None
        addr = self._brk
        self._brk += nbytes
        return addr

    def _release(self, bp: int) -> None:
        h = self._headers
        p = self._freep
        while not (p < bp < h[p].ptr):
            nxt = h[p].ptr
            if p >= nxt and (bp > p or bp < nxt):
                break
            p = nxt
        block, prev = h[bp], h[p]
        nxt = prev.ptr
        if bp + block.size * HEADER_SIZE == nxt:
            block.size += h[nxt].size
            block.ptr = h[nxt].ptr
            del h[nxt]
        else:
            block.ptr = nxt
        if p + prev.size * HEADER_SIZE == bp:
            prev.size += block.size
            prev.ptr = block.ptr
            del h[bp]
        else:
            prev.ptr = bp
        self._freep = p

    def _morecore(self, nunits: int) -> int:
        nunits = max(nunits, MIN_UNITS)
        addr = self._sbrk(nunits * HEADER_SIZE)
        if addr is None:
            raise MemoryError("heap limit reached")
        self._headers[addr] = _Header(0, nunits)
        self._release(addr)
        return self._freep

    def malloc(self, nbytes: int) -> int:
        """Return the address of a fresh block of at least nbytes bytes."""
        if nbytes < 0:
            raise ValueError("size must not be negative")
        h = self._headers
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            h[self._base] = _Header(self._base, 0)
            self._freep = self._base
        prevp = self._freep
        p = h[prevp].ptr
        while True:
            block = h[p]
            if block.size >= nunits:
                if block.size == nunits:
                    h[prevp].ptr = block.ptr
                else:
                    block.size -= nunits
                    p += block.size * HEADER_SIZE
                    h[p] = _Header(0, nunits)
                self._freep = prevp
                addr = p + HEADER_SIZE
                self._allocated.add(addr)
                return addr
            if p == self._freep:
                p = self._morecore(nunits)
            prevp, p = p, h[p].ptr

    def free(self, addr: int) -> None:
        """Return a block obtained from malloc to the free list."""
        if addr not in self._allocated:
            raise ValueError(f"free of unallocated address {addr:#x}")
        self._allocated.remove(addr)
        self._release(addr - HEADER_SIZE)