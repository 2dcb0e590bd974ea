"""Inodes, block allocation, directories and path lookup on a disk image."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .bufcache import BlockDevice, BufferCache
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    FSMAGIC,
    IPB,
    MAXFILE,
    NBUF,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    DiskInode,
    Dirent,
    FsError,
    FsPanic,
    InodeType,
    Stat,
    Superblock,
    bblock,
    iblock,
)
from .log import Log

_UINT32_MAX = 0xFFFFFFFF
_ADDR = struct.Struct("<I")


def _name_bytes(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape").split(b"\0", 1)[0]


def _truncate(name: str) -> str:
    return _name_bytes(name)[:DIRSIZ].decode("utf-8", "surrogateescape")


def namecmp(s: str, t: str) -> int:
    """Compare two names over at most DIRSIZ bytes; 0 means equal."""
    a, b = _name_bytes(s), _name_bytes(t)
    for i in range(DIRSIZ):
        x = a[i] if i < len(a) else 0
        y = b[i] if i < len(b) else 0
        if x != y or x == 0:
            return x - y
    return 0


def skipelem(path: str) -> tuple[str, str] | None:
    """Split the next element off path.

    Returns (name, rest) where rest has no leading slashes, or None when no
    element is left. The name is cut to DIRSIZ bytes.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    element, _, rest = stripped.partition("/")
    return _truncate(element), rest.lstrip("/")


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, with reference count and lock state."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    locked: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))


class FileSystem:
    """A mounted file system: superblock, log, buffer cache and inode table."""

    def __init__(
        self,
        device: BlockDevice,
        dev: int = ROOTDEV,
        ninode: int = NINODE,
        nbuf: int = NBUF,
    ) -> None:
        self.dev = dev
        self.cache = BufferCache(device, nbuf)
        with self.cache.block(1) as bp:
            self.sb = Superblock.unpack(bp.data)
        if self.sb.magic != FSMAGIC:
            raise FsError("invalid file system")
        self.log = Log(self.cache, self.sb.logstart, self.sb.nlog)
        self._itable = [Inode() for _ in range(ninode)]

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self.cache.block(bno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def balloc(self) -> int:
        """Allocate a zeroed disk block and return its number."""
        size = self.sb.size
        for base in range(0, size, BPB):
            found = None
            with self.cache.block(bblock(base, self.sb)) as bp:
                for bi in range(min(BPB, size - base)):
                    mask = 1 << (bi % 8)
                    if not bp.data[bi // 8] & mask:
                        bp.data[bi // 8] |= mask
                        self.log.log_write(bp)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FsError("balloc: out of blocks")

    def bfree(self, b: int) -> None:
        """Mark block b free in the bitmap."""
        with self.cache.block(bblock(b, self.sb)) as bp:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise FsPanic("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(bp)

    # Inodes.

    @staticmethod
    def _slot(inum: int) -> slice:
        off = (inum % IPB) * DINODE_SIZE
        return slice(off, off + DINODE_SIZE)

    def ialloc(self, type: int) -> Inode:
        """Allocate an on-disk inode of the given type; returned unlocked."""
        for inum in range(1, self.sb.ninodes):
            slot = self._slot(inum)
            with self.cache.block(iblock(inum, self.sb)) as bp:
                din = DiskInode.unpack(bytes(bp.data[slot]))
                if din.type != 0:
                    continue
                bp.data[slot] = DiskInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self.iget(inum)
        raise FsError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy the in-memory inode fields to disk."""
        slot = self._slot(ip.inum)
        din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self.cache.block(iblock(ip.inum, self.sb)) as bp:
            bp.data[slot] = din.pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the table entry for inum, taking a reference; not locked."""
        empty = None
        for ip in self._itable:
            if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                ip.ref += 1
                return ip
            if empty is None and ip.ref == 0:
                empty = ip
        if empty is None:
            raise FsPanic("iget: no inodes")
        empty.dev = self.dev
        empty.inum = inum
        empty.ref = 1
        empty.valid = False
        empty.locked = False
        return empty

    def idup(self, ip: Inode) -> Inode:
        ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ip, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsPanic("ilock")
        if ip.locked:
            raise FsPanic("ilock: inode already locked")
        ip.locked = True
        if not ip.valid:
            with self.cache.block(iblock(ip.inum, self.sb)) as bp:
                din = DiskInode.unpack(bytes(bp.data[self._slot(ip.inum)]))
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise FsPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.locked or ip.ref < 1:
            raise FsPanic("iunlock")
        ip.locked = False

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode if it was the last one and unlinked."""
        if ip.ref < 1:
            raise FsPanic("iput")
        if ip.ref == 1 and ip.valid and ip.nlink == 0:
            if ip.locked:
                raise FsPanic("iput: inode is locked")
            ip.locked = True
            try:
                self.itrunc(ip)
                ip.type = 0
                self.iupdate(ip)
                ip.valid = False
            finally:
                ip.locked = False
        ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def bmap(self, ip: Inode, bn: int) -> int:
        """Disk block holding block bn of ip, allocated if missing."""
        if bn < NDIRECT:
            addr = ip.addrs[bn]
            if addr == 0:
                addr = self.balloc()
                ip.addrs[bn] = addr
            return addr
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self.balloc()
            with self.cache.block(ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, 4 * bn)
                if addr == 0:
                    addr = self.balloc()
                    _ADDR.pack_into(bp.data, 4 * bn, addr)
                    self.log.log_write(bp)
            return addr
        raise FsPanic("bmap: out of range")

    def itrunc(self, ip: Inode) -> None:
        """Discard the contents of ip."""
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self.bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.addrs[NDIRECT]) as bp:
                entries = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
                for addr in entries:
                    if addr:
                        self.bfree(addr)
            self.bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(dev=ip.dev, ino=ip.inum, type=ip.type, nlink=ip.nlink, size=ip.size)

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to n bytes from ip starting at off."""
        if off > ip.size or n < 0 or off + n > _UINT32_MAX:
            return b""
        n = min(n, ip.size - off)
        chunks = []
        tot = 0
        while tot < n:
            try:
                addr = self.bmap(ip, off // BSIZE)
            except FsError:
                break
            start = off % BSIZE
            m = min(n - tot, BSIZE - start)
            with self.cache.block(addr) as bp:
                chunks.append(bytes(bp.data[start:start + m]))
            tot += m
            off += m
        return b"".join(chunks)

    def writei(self, ip: Inode, off: int, data: bytes) -> int:
        """Write data to ip at off; returns the number of bytes written."""
        n = len(data)
        if off > ip.size or off + n > _UINT32_MAX:
            raise FsError("write offset beyond end of file")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write exceeds maximum file size")
        tot = 0
        while tot < n:
            try:
                addr = self.bmap(ip, off // BSIZE)
            except FsError:
                break
            start = off % BSIZE
            m = min(n - tot, BSIZE - start)
            with self.cache.block(addr) as bp:
                bp.data[start:start + m] = data[tot:tot + m]
                self.log.log_write(bp)
            tot += m
            off += m
        if off > ip.size:
            ip.size = off
        self.iupdate(ip)
        return tot

    # Directories.

    def _entries(self, dp: Inode, what: str):
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FsPanic(what)
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find name in directory dp; returns (inode, entry offset) or None."""
        if dp.type != InodeType.DIR:
            raise FsPanic("dirlookup not DIR")
        for off, de in self._entries(dp, "dirlookup read"):
            if de.inum != 0 and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to directory dp."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FsError(f"{name}: already exists")
        off = next(
            (o for o, de in self._entries(dp, "dirlink read") if de.inum == 0),
            dp.size,
        )
        if self.writei(dp, off, Dirent(inum, name).pack()) != DIRENT_SIZE:
            raise FsError("dirlink: write failed")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str] | None:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        rest = path
        while (step := skipelem(rest)) is not None:
            name, rest = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and rest == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Inode for path, referenced but unlocked; relative paths start at cwd."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Parent directory of path and the final element's name."""
        return self._namex(path, True, cwd)