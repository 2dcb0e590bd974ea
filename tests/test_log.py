import struct

import pytest

from xv6fs.bufcache import BlockDevice, BufferCache
from xv6fs.layout import BSIZE, FsPanic
from xv6fs.log import Log

START = 2
DATA_BLOCK = 40


def make_log(size=30, nbuf=30):
    dev = BlockDevice.blank(64)
    cache = BufferCache(dev, nbuf=nbuf)
    return dev, cache, Log(cache, START, size)


def header_count(dev):
    return struct.unpack_from("<i", dev.read(START))[0]


def test_transaction_commits_to_disk():
    dev, cache, log = make_log()
    with log.transaction():
        with cache.block(DATA_BLOCK) as buf:
            buf.data[:5] = b"hello"
            log.log_write(buf)
        assert dev.read(DATA_BLOCK)[:5] == bytes(5)
    assert dev.read(DATA_BLOCK)[:5] == b"hello"
    assert dev.read(START + 1)[:5] == b"hello"
    assert header_count(dev) == 0
    assert log.blocks == []


def test_commit_unpins_buffers():
    _, cache, log = make_log()
    with log.transaction():
        with cache.block(DATA_BLOCK) as buf:
            log.log_write(buf)
        assert buf.refcnt == 1
    assert buf.refcnt == 0


def test_repeated_writes_are_absorbed():
    _, cache, log = make_log()
    log.begin_op()
    with cache.block(DATA_BLOCK) as buf:
        log.log_write(buf)
        log.log_write(buf)
    assert log.blocks == [DATA_BLOCK]
    log.end_op()


def test_log_write_outside_transaction():
    _, cache, log = make_log()
    with cache.block(DATA_BLOCK) as buf:
        with pytest.raises(FsPanic):
            log.log_write(buf)


def test_transaction_too_big():
    _, cache, log = make_log(size=5)
    log.begin_op()
    for blockno in range(40, 44):
        with cache.block(blockno) as buf:
            log.log_write(buf)
    with cache.block(44) as buf:
        with pytest.raises(FsPanic):
            log.log_write(buf)


def test_nested_operations_reserve_space():
    _, _, log = make_log()
    for _ in range(3):
        log.begin_op()
    with pytest.raises(FsPanic):
        log.begin_op()
    assert log.outstanding == 3


def test_commit_waits_for_last_operation():
    dev, cache, log = make_log()
    log.begin_op()
    log.begin_op()
    with cache.block(DATA_BLOCK) as buf:
        buf.data[0] = 9
        log.log_write(buf)
    log.end_op()
    assert dev.read(DATA_BLOCK)[0] == 0
    log.end_op()
    assert dev.read(DATA_BLOCK)[0] == 9


def test_end_op_without_begin():
    _, _, log = make_log()
    with pytest.raises(FsPanic):
        log.end_op()


def test_recovery_installs_committed_log():
    dev = BlockDevice.blank(64)
    header = bytearray(BSIZE)
    struct.pack_into("<ii", header, 0, 1, DATA_BLOCK)
    dev.write(START, header)
    dev.write(START + 1, b"r" * BSIZE)
    Log(BufferCache(dev), START, 30)
    assert dev.read(DATA_BLOCK) == b"r" * BSIZE
    assert header_count(dev) == 0