import pytest

from xv6fs.bufcache import BlockDevice
from xv6fs.console import Console
from xv6fs.files import FileTable, FileType
from xv6fs.fs import FileSystem
from xv6fs.layout import (
    BSIZE,
    CONSOLE,
    DINODE_SIZE,
    FSMAGIC,
    IPB,
    LOGSIZE,
    NDEV,
    NDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    FsError,
    FsPanic,
    InodeType,
    Superblock,
    iblock,
)
from xv6fs.pipe import Pipe


def make_fs(nblocks=200, ninodes=32):
    nlog = LOGSIZE
    inodestart = 2 + nlog
    bmapstart = inodestart + ninodes // IPB + 1
    nmeta = bmapstart + 1
    sb = Superblock(FSMAGIC, nblocks, nblocks - nmeta, ninodes, nlog, 2, inodestart, bmapstart)
    dev = BlockDevice.blank(nblocks)
    dev.write(1, sb.pack().ljust(BSIZE, b"\0"))
    root = DiskInode(type=InodeType.DIR, nlink=1, size=2 * len(Dirent().pack()),
                     addrs=[nmeta] + [0] * NDIRECT)
    iblk = bytearray(BSIZE)
    off = (ROOTINO % IPB) * DINODE_SIZE
    iblk[off:off + DINODE_SIZE] = root.pack()
    dev.write(iblock(ROOTINO, sb), iblk)
    entries = Dirent(ROOTINO, ".").pack() + Dirent(ROOTINO, "..").pack()
    dev.write(nmeta, entries.ljust(BSIZE, b"\0"))
    bitmap = bytearray(BSIZE)
    for b in range(nmeta + 1):
        bitmap[b // 8] |= 1 << (b % 8)
    dev.write(bmapstart, bitmap)
    return FileSystem(dev)


def inode_file(table):
    fs = table.fs
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.iunlock(ip)
    f = table.alloc()
    f.type = FileType.INODE
    f.ip = ip
    f.readable = f.writable = True
    return f


def test_alloc_exhaustion():
    table = FileTable(make_fs(), nfile=2)
    table.alloc()
    table.alloc()
    with pytest.raises(FsError):
        table.alloc()


def test_dup_and_close_reuse_slot():
    table = FileTable(make_fs(), nfile=1)
    f = table.alloc()
    assert table.dup(f).ref == 2
    table.close(f)
    assert f.ref == 1
    table.close(f)
    assert f.ref == 0 and f.type is FileType.NONE
    assert table.alloc() is f


def test_close_unreferenced_panics():
    table = FileTable(make_fs())
    f = table.alloc()
    table.close(f)
    with pytest.raises(FsPanic):
        table.close(f)


def test_pipe_ends():
    table = FileTable(make_fs())
    pipe = Pipe()
    rf, wf = table.alloc(), table.alloc()
    rf.type = wf.type = FileType.PIPE
    rf.pipe = wf.pipe = pipe
    rf.readable = True
    wf.writable = True
    assert table.write(wf, b"data") == 4
    assert table.read(rf, 10) == b"data"
    with pytest.raises(FsError):
        table.read(wf, 1)
    with pytest.raises(FsError):
        table.stat(rf)
    table.close(wf)
    assert not pipe.writeopen
    assert table.read(rf, 10) == b""


def test_inode_round_trip_across_chunks():
    table = FileTable(make_fs())
    f = inode_file(table)
    payload = bytes(range(256)) * 20
    assert table.write(f, payload) == len(payload)
    f.off = 0
    assert table.read(f, len(payload) + 100) == payload
    st = table.stat(f)
    assert st.size == len(payload)
    assert st.ino == f.ip.inum
    assert st.type == InodeType.FILE


def test_device_read_write():
    table = FileTable(make_fs())
    con = Console()
    table.register_device(CONSOLE, con)
    f = table.alloc()
    f.type = FileType.DEVICE
    f.major = CONSOLE
    f.readable = f.writable = True
    assert table.write(f, b"out") == 3
    assert bytes(con.output) == b"out"
    for ch in "in\n":
        con.interrupt(ch)
    assert table.read(f, 10) == b"in\n"


def test_unregistered_device_fails():
    table = FileTable(make_fs())
    f = table.alloc()
    f.type = FileType.DEVICE
    f.major = 5
    f.readable = True
    with pytest.raises(FsError):
        table.read(f, 1)
    with pytest.raises(ValueError):
        table.register_device(NDEV, Console())