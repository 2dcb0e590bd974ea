"""File-system system calls on behalf of one process: descriptors and paths."""

from __future__ import annotations

from .files import FileTable, FileType, OpenFile
from .fs import FileSystem, Inode, namecmp
from .layout import (
    DIRENT_SIZE,
    NDEV,
    NOFILE,
    FsError,
    FsPanic,
    InodeType,
    OpenFlags,
    Stat,
)
from .pipe import Pipe


class SyscallError(FsError):
    """A system call failed."""


class Session:
    """A process's view: open file descriptors and a current directory."""

    def __init__(
        self,
        fs: FileSystem,
        files: FileTable | None = None,
        cwd: Inode | None = None,
    ) -> None:
        self.fs = fs
        self.files = files if files is not None else FileTable(fs)
        self.ofile: list[OpenFile | None] = [None] * NOFILE
        if cwd is None:
            cwd = fs.namei("/")
        self.cwd = cwd

    def _file(self, fd: int) -> OpenFile:
        f = self.ofile[fd] if 0 <= fd < NOFILE else None
        if f is None:
            raise SyscallError(f"bad file descriptor {fd}")
        return f

    def _fdalloc(self, f: OpenFile) -> int:
        for fd, slot in enumerate(self.ofile):
            if slot is None:
                self.ofile[fd] = f
                return fd
        raise SyscallError("too many open files")

    def dup(self, fd: int) -> int:
        f = self._file(fd)
        newfd = self._fdalloc(f)
        self.files.dup(f)
        return newfd

    def read(self, fd: int, n: int) -> bytes:
        f = self._file(fd)
        try:
            return self.files.read(f, n)
        except FsError as exc:
            raise SyscallError(str(exc)) from exc

    def write(self, fd: int, data: bytes) -> int:
        f = self._file(fd)
        try:
            return self.files.write(f, data)
        except FsError as exc:
            raise SyscallError(str(exc)) from exc

    def close(self, fd: int) -> None:
        f = self._file(fd)
        self.ofile[fd] = None
        self.files.close(f)

    def fstat(self, fd: int) -> Stat:
        f = self._file(fd)
        try:
            return self.files.stat(f)
        except FsError as exc:
            raise SyscallError(str(exc)) from exc

    def stat(self, path: str) -> Stat:
        fd = self.open(path, OpenFlags.RDONLY)
        try:
            return self.fstat(fd)
        finally:
            self.close(fd)

    def link(self, old: str, new: str) -> None:
        fs = self.fs
        with fs.log.transaction():
            ip = fs.namei(old, self.cwd)
            if ip is None:
                raise SyscallError(f"{old}: no such file")
            fs.ilock(ip)
            if ip.type == InodeType.DIR:
                fs.iunlockput(ip)
                raise SyscallError(f"{old}: is a directory")
            ip.nlink += 1
            fs.iupdate(ip)
            fs.iunlock(ip)
            try:
                self._link_entry(ip, new)
            except FsError as exc:
                fs.ilock(ip)
                ip.nlink -= 1
                fs.iupdate(ip)
                fs.iunlockput(ip)
                if isinstance(exc, SyscallError):
                    raise
                raise SyscallError(str(exc)) from exc
            fs.iput(ip)

    def _link_entry(self, ip: Inode, new: str) -> None:
        fs = self.fs
        parent = fs.nameiparent(new, self.cwd)
        if parent is None:
            raise SyscallError(f"{new}: no such directory")
        dp, name = parent
        fs.ilock(dp)
        try:
            if dp.dev != ip.dev:
                raise SyscallError("link across devices")
            fs.dirlink(dp, name, ip.inum)
        finally:
            fs.iunlockput(dp)

    def _isdirempty(self, dp: Inode) -> bool:
        for off in range(2 * DIRENT_SIZE, dp.size, DIRENT_SIZE):
            raw = self.fs.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FsPanic("isdirempty: readi")
            if int.from_bytes(raw[:2], "little") != 0:
                return False
        return True

    def _unlink_target(self, dp: Inode, name: str, path: str) -> tuple[Inode, int]:
        fs = self.fs
        if namecmp(name, ".") == 0 or namecmp(name, "..") == 0:
            raise SyscallError(f"{path}: cannot unlink . or ..")
        found = fs.dirlookup(dp, name)
        if found is None:
            raise SyscallError(f"{path}: no such file")
        ip, off = found
        fs.ilock(ip)
        if ip.nlink < 1:
            raise FsPanic("unlink: nlink < 1")
        if ip.type == InodeType.DIR and not self._isdirempty(ip):
            fs.iunlockput(ip)
            raise SyscallError(f"{path}: directory not empty")
        return ip, off

    def unlink(self, path: str) -> None:
        fs = self.fs
        with fs.log.transaction():
            parent = fs.nameiparent(path, self.cwd)
            if parent is None:
                raise SyscallError(f"{path}: no such directory")
            dp, name = parent
            fs.ilock(dp)
            try:
                ip, off = self._unlink_target(dp, name, path)
            except SyscallError:
                fs.iunlockput(dp)
                raise
            if fs.writei(dp, off, bytes(DIRENT_SIZE)) != DIRENT_SIZE:
                raise FsPanic("unlink: writei")
            if ip.type == InodeType.DIR:
                dp.nlink -= 1
                fs.iupdate(dp)
            fs.iunlockput(dp)
            ip.nlink -= 1
            fs.iupdate(ip)
            fs.iunlockput(ip)

    def _create(self, path: str, type_: InodeType, major: int, minor: int) -> Inode:
        """Create path (or reuse an existing file); returns it locked."""
        fs = self.fs
        parent = fs.nameiparent(path, self.cwd)
        if parent is None:
            raise SyscallError(f"{path}: no such directory")
        dp, name = parent
        fs.ilock(dp)
        found = fs.dirlookup(dp, name)
        if found is not None:
            fs.iunlockput(dp)
            ip = found[0]
            fs.ilock(ip)
            if type_ == InodeType.FILE and ip.type in (InodeType.FILE, InodeType.DEVICE):
                return ip
            fs.iunlockput(ip)
            raise SyscallError(f"{path}: already exists")
        try:
            ip = fs.ialloc(type_)
        except FsError as exc:
            fs.iunlockput(dp)
            raise SyscallError(str(exc)) from exc
        fs.ilock(ip)
        ip.major = major
        ip.minor = minor
        ip.nlink = 1
        fs.iupdate(ip)
        try:
            if type_ == InodeType.DIR:
                fs.dirlink(ip, ".", ip.inum)
                fs.dirlink(ip, "..", dp.inum)
            fs.dirlink(dp, name, ip.inum)
        except FsError as exc:
            ip.nlink = 0
            fs.iupdate(ip)
            fs.iunlockput(ip)
            fs.iunlockput(dp)
            raise SyscallError(str(exc)) from exc
        if type_ == InodeType.DIR:
            dp.nlink += 1
            fs.iupdate(dp)
        fs.iunlockput(dp)
        return ip

    def open(self, path: str, omode: int) -> int:
        """Open path with OpenFlags mode bits; returns a file descriptor."""
        omode = int(omode)
        fs = self.fs
        with fs.log.transaction():
            if omode & OpenFlags.CREATE:
                ip = self._create(path, InodeType.FILE, 0, 0)
            else:
                ip = fs.namei(path, self.cwd)
                if ip is None:
                    raise SyscallError(f"{path}: no such file")
                fs.ilock(ip)
                if ip.type == InodeType.DIR and omode != OpenFlags.RDONLY:
                    fs.iunlockput(ip)
                    raise SyscallError(f"{path}: is a directory")
            if ip.type == InodeType.DEVICE and not 0 <= ip.major < NDEV:
                fs.iunlockput(ip)
                raise SyscallError(f"{path}: bad device")
            f = None
            try:
                f = self.files.alloc()
                fd = self._fdalloc(f)
            except FsError as exc:
                if f is not None:
                    self.files.close(f)
                fs.iunlockput(ip)
                if isinstance(exc, SyscallError):
                    raise
                raise SyscallError(str(exc)) from exc
            if ip.type == InodeType.DEVICE:
                f.type = FileType.DEVICE
                f.major = ip.major
            else:
                f.type = FileType.INODE
                f.off = 0
            f.ip = ip
            f.readable = not omode & OpenFlags.WRONLY
            f.writable = bool(omode & (OpenFlags.WRONLY | OpenFlags.RDWR))
            if omode & OpenFlags.TRUNC and ip.type == InodeType.FILE:
                fs.itrunc(ip)
            fs.iunlock(ip)
        return fd

    def mkdir(self, path: str) -> None:
        with self.fs.log.transaction():
            self.fs.iunlockput(self._create(path, InodeType.DIR, 0, 0))

    def mknod(self, path: str, major: int, minor: int) -> None:
        with self.fs.log.transaction():
            self.fs.iunlockput(self._create(path, InodeType.DEVICE, major, minor))

    def chdir(self, path: str) -> None:
        fs = self.fs
        with fs.log.transaction():
            ip = fs.namei(path, self.cwd)
            if ip is None:
                raise SyscallError(f"{path}: no such directory")
            fs.ilock(ip)
            if ip.type != InodeType.DIR:
                fs.iunlockput(ip)
                raise SyscallError(f"{path}: not a directory")
            fs.iunlock(ip)
            fs.iput(self.cwd)
        self.cwd = ip

    def pipe(self) -> tuple[int, int]:
        """Create a pipe; returns (read fd, write fd)."""
        rf = wf = None
        try:
            rf = self.files.alloc()
            wf = self.files.alloc()
        except FsError as exc:
            for f in (rf, wf):
                if f is not None:
                    self.files.close(f)
            raise SyscallError(str(exc)) from exc
        pi = Pipe()
        rf.type = wf.type = FileType.PIPE
        rf.pipe = wf.pipe = pi
        rf.readable, rf.writable = True, False
        wf.readable, wf.writable = False, True
        fd0 = -1
        try:
            fd0 = self._fdalloc(rf)
            fd1 = self._fdalloc(wf)
        except SyscallError:
            if fd0 >= 0:
                self.ofile[fd0] = None
            self.files.close(rf)
            self.files.close(wf)
            raise
        return fd0, fd1