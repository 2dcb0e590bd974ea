import pytest

from xv6fs.layout import FsError
from xv6fs.pipe import PIPESIZE, Pipe


def test_round_trip():
    p = Pipe()
    assert p.write(b"hello") == 5
    assert p.read(100) == b"hello"


def test_partial_read_keeps_rest():
    p = Pipe()
    p.write(b"abcdef")
    assert p.read(2) == b"ab"
    assert p.read(10) == b"cdef"


def test_empty_read_with_writer_open_would_block():
    p = Pipe()
    with pytest.raises(BlockingIOError):
        p.read(1)


def test_eof_after_writer_closes():
    p = Pipe()
    p.write(b"xy")
    p.close(writable=True)
    assert p.read(10) == b"xy"
    assert p.read(10) == b""


def test_write_after_reader_closed_fails():
    p = Pipe()
    p.close(writable=False)
    with pytest.raises(FsError):
        p.write(b"data")


def test_buffer_limit():
    p = Pipe()
    assert p.write(bytes(PIPESIZE + 88)) == PIPESIZE
    assert len(p) == PIPESIZE
    with pytest.raises(BlockingIOError):
        p.write(b"z")
    p.read(8)
    assert p.write(b"0123456789") == 8


def test_freed_only_when_both_closed():
    p = Pipe()
    p.close(writable=True)
    assert not p.freed
    p.close(writable=False)
    assert p.freed