"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRSIZ,
    FSMAGIC,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    FsError,
    InodeType,
    Superblock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out an empty file system and appends files to its root directory.

    Disk layout:
    [ boot block | sb block | log | inode blocks | free bit map | data blocks ]
    """

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES) -> None:
        self.size = size
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = LOGSIZE
        self.nmeta = 2 + self.nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError(f"a file system of {size} blocks has no room for data")
        self.sb = Superblock(
            magic=FSMAGIC,
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=self.nlog,
            logstart=2,
            inodestart=2 + self.nlog,
            bmapstart=2 + self.nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(size * BSIZE)
        self._finished = False
        self._wsect(1, self.sb.pack())

        self.rootino = self.ialloc(InodeType.DIR)
        if self.rootino != ROOTINO:
            raise FsError(f"root inode is {self.rootino}, expected {ROOTINO}")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    # Sectors.

    def _rsect(self, sec: int) -> bytes:
        if not 0 <= sec < self.size:
            raise FsError(f"sector {sec} out of range")
        return bytes(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if not 0 <= sec < self.size:
            raise FsError(f"sector {sec} out of range")
        if len(data) > BSIZE:
            raise FsError("sector data larger than a block")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = data.ljust(BSIZE, b"\0")

    def _alloc_block(self) -> int:
        if self.freeblock >= self.size:
            raise FsError("out of blocks")
        block = self.freeblock
        self.freeblock += 1
        return block

    # Inodes.

    def rinode(self, inum: int) -> DiskInode:
        """Read inode inum from the image."""
        off = (inum % IPB) * DINODE_SIZE
        sect = self._rsect(iblock(inum, self.sb))
        return DiskInode.unpack(sect[off:off + DINODE_SIZE])

    def winode(self, inum: int, din: DiskInode) -> None:
        """Write inode inum to the image."""
        bn = iblock(inum, self.sb)
        off = (inum % IPB) * DINODE_SIZE
        buf = bytearray(self._rsect(bn))
        buf[off:off + DINODE_SIZE] = din.pack()
        self._wsect(bn, bytes(buf))

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link; returns its number."""
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise FsError("no inodes")
        self.freeinode += 1
        self.winode(inum, DiskInode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append data to the end of inode inum, allocating blocks as needed."""
        din = self.rinode(inum)
        off = din.size
        pos = 0
        remaining = len(data)
        while remaining > 0:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise FsError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(remaining, (fbn + 1) * BSIZE - off)
            buf = bytearray(self._rsect(x))
            start = off - fbn * BSIZE
            buf[start:start + n1] = data[pos:pos + n1]
            self._wsect(x, bytes(buf))
            remaining -= n1
            off += n1
            pos += n1
        din.size = off
        self.winode(inum, din)

    # Files.

    @staticmethod
    def _shortname(name: str) -> str:
        short = name[len("user/"):] if name.startswith("user/") else name
        if "/" in short:
            raise FsError(f"{name}: file names may not contain '/'")
        if short.startswith("_"):
            short = short[1:]
        if len(short.encode("utf-8", "surrogateescape")) > DIRSIZ:
            raise FsError(f"{name}: name longer than {DIRSIZ} bytes")
        return short

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; returns its inode number.

        A leading "user/" and then a leading "_" are dropped from the name.
        """
        if self._finished:
            raise FsError("image already finished")
        short = self._shortname(name)
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.rootino, Dirent(inum, short).pack())
        self.iappend(inum, bytes(data))
        return inum

    def _write_bitmap(self, used: int) -> None:
        if used >= BPB:
            raise FsError("too many blocks in use for one bitmap block")
        buf = bytearray(BSIZE)
        for i in range(used):
            buf[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bytes(buf))

    def finish(self) -> bytes:
        """Fix the root directory size, write the bitmap and return the image."""
        if not self._finished:
            din = self.rinode(self.rootino)
            din.size = (din.size // BSIZE + 1) * BSIZE
            self.winode(self.rootino, din)
            self._write_bitmap(self.freeblock)
            self._finished = True
        return bytes(self._image)


def make_image(files: Mapping[str, bytes] | Iterable[tuple[str, bytes]]) -> bytes:
    """Build an image holding the given (name, contents) files."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args
    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.size}"
    )
    try:
        for name in names:
            builder._shortname(name)
            try:
                data = Path(name).read_bytes()
            except OSError as exc:
                print(f"{name}: {exc.strerror}", file=sys.stderr)
                return 1
            builder.add_file(name, data)
        print(f"balloc: first {builder.freeblock} blocks have been allocated")
        print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
        image = builder.finish()
    except FsError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0