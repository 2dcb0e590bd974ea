# xv6fs

A small Unix-style file system in Python. An image is a sequence of
1024-byte blocks laid out as:

    [ boot | superblock | log | inode blocks | free bitmap | data blocks ]

The package builds such images, mounts them in memory and works on them
through file descriptors, with every change going through a write-ahead log.

## Modules

- `xv6fs.layout`: on-disk structures (`Superblock`, `DiskInode`, `Dirent`),
  `Stat`, the constants (`BSIZE`, `NDIRECT`, `DIRSIZ`, `FSSIZE`, ...),
  `InodeType`, `OpenFlags`, the helpers `iblock`, `bblock`, `mkdev`, `major`,
  `minor`, and the exceptions `FsError` and `FsPanic`.
- `xv6fs.bufcache`: `BlockDevice` (an image in memory; `blank`, `from_file`,
  `save`, `read`, `write`) and `BufferCache`, a fixed pool of buffers recycled
  least recently used first. `BufferCache.block(n)` is a context manager that
  holds a buffer and releases it.
- `xv6fs.log`: `Log`, which groups block writes into transactions
  (`begin_op`/`end_op`, or the `transaction()` context manager) and installs
  any committed transaction left in the log when it is created.
- `xv6fs.fs`: `FileSystem`, with the block allocator (`balloc`, `bfree`), the
  inode table (`ialloc`, `iget`, `ilock`, `iput`, ...), file contents
  (`readi`, `writei`, `itrunc`), directories (`dirlookup`, `dirlink`) and path
  lookup (`namei`, `nameiparent`), plus the helpers `skipelem` and `namecmp`.
- `xv6fs.pipe`: `Pipe`, a byte channel holding at most 512 unread bytes.
- `xv6fs.console`: `Console`, a line-editing input buffer (backspace, ^U to
  kill a line, ^D for end of input) whose echo and output collect in
  `Console.output`.
- `xv6fs.files`: `FileTable` and `OpenFile`, the shared open-file table for
  inodes, pipes and devices registered with `register_device`.
- `xv6fs.sysfile`: `Session`, one process's file descriptors and current
  directory, with `open`, `read`, `write`, `close`, `dup`, `fstat`, `stat`,
  `link`, `unlink`, `mkdir`, `mknod`, `chdir` and `pipe`. Failures raise
  `SyscallError`.
- `xv6fs.mkfs`: `ImageBuilder` and `make_image` for building new images.
- `xv6fs.shell`: `parsecmd`, which turns a command line into a tree of
  `ExecCmd`, `RedirCmd`, `PipeCmd`, `ListCmd` and `BackCmd`; bad input raises
  `ShellSyntaxError`.
- `xv6fs.tools`: `cat`, `echo`, `grep` (with `match` for its small regular
  expressions: `.`, `*`, `^`, `$`), `wc`/`wc_counts`, `ls`/`fmtname`, `mkdir`,
  `rm` and `atoi`, all working through a `Session`.
- `xv6fs.fmt`: `kformat` and `uformat`, printf-style formatting with `%d`,
  `%u`, `%x` (and their `l`/`ll` forms), `%p`, `%s` and `%%`; `kformat` uses
  64-bit values and lowercase hex, `uformat` 32-bit values and uppercase hex.
- `xv6fs.umalloc`: `Allocator`, a first-fit free-list allocator over a
  simulated heap, handing out addresses with `malloc` and taking them back
  with `free`.

## Installation

    pip install .

## Building an image

The first argument is the output image. Each further argument is a file to
place in the root directory. A leading `user/` is removed from each name, and
then a leading `_`:

    xv6fs-mkfs fs.img user/_cat README.md

Names must not contain `/` after that and must fit in 14 bytes.

## Using the library

```python
from xv6fs.bufcache import BlockDevice
from xv6fs.fs import FileSystem
from xv6fs.layout import OpenFlags
from xv6fs.mkfs import make_image
from xv6fs.shell import parsecmd
from xv6fs.sysfile import Session

fs = FileSystem(BlockDevice(make_image({"hello.txt": b"hi\n"})))
session = Session(fs)

fd = session.open("hello.txt", OpenFlags.RDONLY)
print(session.read(fd, 100))          # b'hi\n'
session.close(fd)

session.mkdir("docs")
fd = session.open("docs/note", OpenFlags.CREATE | OpenFlags.WRONLY)
session.write(fd, b"written through the log\n")
session.close(fd)

fs.cache.device.save("fs.img")

cmd = parsecmd("cat < hello.txt | wc > out; echo done &")
```

Changes reach the `BlockDevice` when a transaction commits; `save` writes the
device's current contents to a file.

## What it does not do

- There are no processes, no scheduler and no program loading. The shell
  module only parses command lines; it does not run them.
- Nothing waits. Where a reader or writer would block (an empty or full pipe,
  a console with no finished line), `BlockingIOError` is raised, and
  `Log.begin_op` raises `FsPanic` instead of waiting for log space.
- Devices are objects with `read(n)` and `write(data)` registered with
  `FileTable.register_device`; there is no hardware access.

## Tests

    pip install .[test]
    pytest