"""On-disk layout, system parameters and types shared by the file system."""

from __future__ import annotations

import enum
import struct
from dataclasses import astuple, dataclass, field

# System parameters.
NPROC = 64
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 2000
MAXPATH = 128
USERSTACK = 1

# File system geometry.
ROOTINO = 1
BSIZE = 1024
FSMAGIC = 0x10203040
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14

CONSOLE = 1

_SUPERBLOCK = struct.Struct("<8I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // DINODE_SIZE
BPB = BSIZE * 8


class FsError(Exception):
    """An operation on the file system failed."""


class FsPanic(RuntimeError):
    """An internal invariant of the file system was violated."""


class InodeType(enum.IntEnum):
    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


class OpenFlags(enum.IntFlag):
    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200
    TRUNC = 0x400


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise FsError(f"{what}: need {size} bytes, got {len(data)}")


@dataclass
class Superblock:
    """Describes the disk layout; stored in block 1."""

    magic: int = FSMAGIC
    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(*astuple(self))

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        _require(data, _SUPERBLOCK.size, "superblock")
        return cls(*_SUPERBLOCK.unpack_from(data))


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise FsError(f"inode needs {NDIRECT + 1} block addresses")
        try:
            return _DINODE.pack(
                self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
            )
        except struct.error as exc:
            raise FsError(f"inode field out of range: {exc}") from None

    @classmethod
    def unpack(cls, data: bytes) -> DiskInode:
        _require(data, _DINODE.size, "inode")
        type_, major_, minor_, nlink, size, *addrs = _DINODE.unpack_from(data)
        return cls(type_, major_, minor_, nlink, size, list(addrs))


@dataclass
class Dirent:
    """A directory entry: inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        if not 0 <= self.inum <= 0xFFFF:
            raise FsError(f"inode number {self.inum} does not fit a directory entry")
        raw = self.name.encode("utf-8", "surrogateescape")[:DIRSIZ]
        return _DIRENT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> Dirent:
        _require(data, _DIRENT.size, "directory entry")
        inum, raw = _DIRENT.unpack_from(data)
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(inum, name)


@dataclass
class Stat:
    """Metadata reported for an open file."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


def iblock(inum: int, sb: Superblock) -> int:
    """Block holding inode inum."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Bitmap block holding the bit for block b."""
    return b // BPB + sb.bmapstart


def mkdev(major: int, minor: int) -> int:
    return ((major << 16) | minor) & 0xFFFFFFFF


def major(dev: int) -> int:
    return (dev >> 16) & 0xFFFF


def minor(dev: int) -> int:
    return dev & 0xFFFF