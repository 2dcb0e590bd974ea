import pytest

from xv6fs.bufcache import BlockDevice
from xv6fs.fs import FileSystem
from xv6fs.layout import (
    BPB,
    BSIZE,
    DIRENT_SIZE,
    FSMAGIC,
    FSSIZE,
    LOGSIZE,
    MAXFILE,
    ROOTINO,
    Dirent,
    FsError,
    InodeType,
    Superblock,
)
from xv6fs.mkfs import NINODES, ImageBuilder, main, make_image


def read_file(image, path):
    fs = FileSystem(BlockDevice(image))
    ip = fs.namei(path)
    assert ip is not None
    fs.ilock(ip)
    data = fs.readi(ip, 0, ip.size)
    fs.iunlockput(ip)
    return data


def root_names(image):
    fs = FileSystem(BlockDevice(image))
    ip = fs.namei("/")
    fs.ilock(ip)
    raw = fs.readi(ip, 0, ip.size)
    fs.iunlockput(ip)
    entries = [Dirent.unpack(raw[i:i + DIRENT_SIZE]) for i in range(0, len(raw), DIRENT_SIZE)]
    return [de.name for de in entries if de.inum != 0]


def test_superblock_fields():
    image = make_image({})
    assert len(image) == FSSIZE * BSIZE
    sb = Superblock.unpack(image[BSIZE:2 * BSIZE])
    assert sb.magic == FSMAGIC
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.inodestart == 2 + LOGSIZE
    assert sb.bmapstart > sb.inodestart


def test_small_file_round_trip():
    image = make_image({"README": b"hello world\n"})
    assert read_file(image, "/README") == b"hello world\n"


def test_large_file_uses_indirect_block():
    data = bytes(range(256)) * 60  # more than twelve blocks
    image = make_image([("big", data)])
    assert read_file(image, "/big") == data


def test_names_are_shortened():
    image = make_image({"user/_ls": b"x", "_cat": b"y", "plain": b"z"})
    assert root_names(image) == [".", "..", "ls", "cat", "plain"]
    assert read_file(image, "/ls") == b"x"
    assert read_file(image, "/cat") == b"y"


def test_root_directory_shape():
    builder = ImageBuilder()
    builder.add_file("a", b"1")
    builder.finish()
    din = builder.rinode(ROOTINO)
    assert din.type == InodeType.DIR
    assert din.nlink == 1
    assert din.size == BSIZE


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("data", b"q" * (3 * BSIZE))
    image = builder.finish()
    fs = FileSystem(BlockDevice(image))
    with fs.log.transaction():
        assert fs.balloc() == builder.freeblock


def test_name_with_slash_rejected():
    builder = ImageBuilder()
    with pytest.raises(FsError):
        builder.add_file("dir/file", b"")


def test_name_too_long_rejected():
    builder = ImageBuilder()
    with pytest.raises(FsError):
        builder.add_file("a" * 15, b"")


def test_inodes_exhausted():
    builder = ImageBuilder(ninodes=4)
    builder.add_file("one", b"")
    builder.add_file("two", b"")
    with pytest.raises(FsError):
        builder.add_file("three", b"")


def test_out_of_blocks():
    builder = ImageBuilder(size=60)
    with pytest.raises(FsError):
        builder.add_file("huge", b"x" * (40 * BSIZE))


def test_file_too_large():
    builder = ImageBuilder()
    with pytest.raises(FsError):
        builder.add_file("huge", b"x" * ((MAXFILE + 1) * BSIZE))


def test_winode_rinode_round_trip():
    builder = ImageBuilder()
    inum = builder.ialloc(InodeType.FILE)
    din = builder.rinode(inum)
    din.size = 77
    din.addrs[0] = builder.nmeta + 5
    builder.winode(inum, din)
    assert builder.rinode(inum) == din


def test_too_small_image_rejected():
    with pytest.raises(ValueError):
        ImageBuilder(size=10)


def test_bitmap_limit():
    builder = ImageBuilder()
    builder.freeblock = BPB
    with pytest.raises(FsError):
        builder.finish()


def test_main_builds_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "user").mkdir()
    (tmp_path / "user" / "_echo").write_bytes(b"echo program")
    assert main(["fs.img", "user/_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert read_file(image, "/echo") == b"echo program"
    out = capsys.readouterr().out
    assert "balloc: write bitmap block at sector" in out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "missing"]) == 1
    assert not (tmp_path / "fs.img").exists()