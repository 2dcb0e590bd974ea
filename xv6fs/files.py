"""Open-file table: pipes, devices and inodes behind one read/write interface."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

from .fs import FileSystem, Inode
from .layout import BSIZE, MAXOPBLOCKS, NDEV, NFILE, FsError, FsPanic, InodeType, Stat
from .pipe import Pipe

# Largest write done in one transaction: inode, indirect and bitmap blocks
# plus two blocks of slop for unaligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class _Device(Protocol):
    def read(self, n: int) -> bytes: ...

    def write(self, data: bytes) -> int: ...


class FileType(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2
    DEVICE = 3


@dataclass(eq=False)
class OpenFile:
    """One entry of the open-file table."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0
    major: int = 0


class FileTable:
    """Fixed-size table of open files shared by all sessions."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE) -> None:
        self.fs = fs
        self._files = [OpenFile() for _ in range(nfile)]
        self._devices: dict[int, _Device] = {}

    def register_device(self, major: int, device: _Device) -> None:
        if not 0 <= major < NDEV:
            raise ValueError(f"device major {major} out of range")
        self._devices[major] = device

    @staticmethod
    def _reset(f: OpenFile) -> None:
        f.type = FileType.NONE
        f.readable = False
        f.writable = False
        f.pipe = None
        f.ip = None
        f.off = 0
        f.major = 0

    def alloc(self) -> OpenFile:
        f = next((f for f in self._files if f.ref == 0), None)
        if f is None:
            raise FsError("file table full")
        self._reset(f)
        f.ref = 1
        return f

    def dup(self, f: OpenFile) -> OpenFile:
        if f.ref < 1:
            raise FsPanic("filedup")
        f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        if f.ref < 1:
            raise FsPanic("fileclose")
        f.ref -= 1
        if f.ref > 0:
            return
        kind, pipe, writable, ip = f.type, f.pipe, f.writable, f.ip
        self._reset(f)
        if kind is FileType.PIPE:
            pipe.close(writable)
        elif kind in (FileType.INODE, FileType.DEVICE):
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        if f.type not in (FileType.INODE, FileType.DEVICE):
            raise FsError("stat: not an inode")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def _device(self, f: OpenFile) -> _Device:
        device = self._devices.get(f.major) if 0 <= f.major < NDEV else None
        if device is None:
            raise FsError(f"no device with major {f.major}")
        return device

    def read(self, f: OpenFile, n: int) -> bytes:
        if not f.readable:
            raise FsError("file not open for reading")
        if f.type is FileType.PIPE:
            return f.pipe.read(n)
        if f.type is FileType.DEVICE:
            return self._device(f).read(n)
        if f.type is FileType.INODE:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise FsPanic("fileread")

    def write(self, f: OpenFile, data: bytes) -> int:
        if not f.writable:
            raise FsError("file not open for writing")
        data = bytes(data)
        if f.type is FileType.PIPE:
            return f.pipe.write(data)
        if f.type is FileType.DEVICE:
            return self._device(f).write(data)
        if f.type is FileType.INODE:
            written = 0
            while written < len(data):
                chunk = data[written:written + _MAX_WRITE]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, f.off, chunk)
                        f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise FsError("short write")
                written += r
            return written
        raise FsPanic("filewrite")


__all__ = ["FileTable", "FileType", "InodeType", "OpenFile"]