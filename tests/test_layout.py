import pytest

from xv6fs.layout import (
    BSIZE,
    DIRSIZ,
    FSMAGIC,
    IPB,
    NDIRECT,
    BPB,
    DiskInode,
    Dirent,
    FsError,
    Superblock,
    bblock,
    iblock,
    major,
    minor,
    mkdev,
)


def test_superblock_round_trip():
    sb = Superblock(FSMAGIC, 2000, 1954, 200, 30, 2, 32, 45)
    assert Superblock.unpack(sb.pack()) == sb


def test_superblock_magic_is_little_endian():
    assert Superblock().pack()[:4] == b"\x40\x30\x20\x10"


def test_superblock_size_is_eight_words():
    assert len(Superblock().pack()) == 32


def test_superblock_unpack_from_whole_block():
    sb = Superblock(size=9, ninodes=3)
    block = sb.pack() + bytes(BSIZE - len(sb.pack()))
    assert Superblock.unpack(block) == sb


def test_superblock_unpack_short_data():
    with pytest.raises(FsError):
        Superblock.unpack(b"\x00" * 8)


def test_dinode_round_trip():
    din = DiskInode(2, 1, 0, 3, 4000, list(range(100, 100 + NDIRECT + 1)))
    assert DiskInode.unpack(din.pack()) == din


def test_dinodes_fill_a_block():
    assert len(DiskInode().pack()) * IPB == BSIZE


def test_dinode_wrong_addr_count():
    with pytest.raises(FsError):
        DiskInode(addrs=[0] * NDIRECT).pack()


def test_dinode_negative_type_round_trip():
    din = DiskInode(type=-1, nlink=-2)
    assert DiskInode.unpack(din.pack()).nlink == -2


def test_dirent_round_trip():
    de = Dirent(7, "README")
    assert Dirent.unpack(de.pack()) == de


def test_dirent_size_divides_block():
    packed = Dirent(1, ".").pack()
    assert len(packed) == DIRSIZ + 2
    assert BSIZE % len(packed) == 0


def test_dirent_name_is_truncated():
    de = Dirent(3, "a" * 20)
    assert Dirent.unpack(de.pack()).name == "a" * DIRSIZ


def test_dirent_name_stops_at_nul():
    raw = Dirent(5, "ab").pack()
    assert Dirent.unpack(raw).name == "ab"
    assert raw[4:] == bytes(DIRSIZ - 2)


def test_dirent_inum_out_of_range():
    with pytest.raises(FsError):
        Dirent(0x10000, "x").pack()


def test_iblock_groups_inodes():
    sb = Superblock(inodestart=32)
    assert iblock(0, sb) == 32
    assert iblock(IPB - 1, sb) == 32
    assert iblock(IPB, sb) == 33


def test_bblock_groups_bits():
    sb = Superblock(bmapstart=45)
    assert bblock(0, sb) == 45
    assert bblock(BPB - 1, sb) == 45
    assert bblock(BPB, sb) == 46


def test_mkdev_round_trip():
    dev = mkdev(3, 7)
    assert major(dev) == 3
    assert minor(dev) == 7