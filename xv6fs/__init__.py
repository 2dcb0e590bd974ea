"""A small Unix-style file system: image building, buffer cache, logging, inodes, directories, pipes, a shell parser and tools."""

__version__ = "0.1.0"
__all__ = [
    "layout",
    "bufcache",
    "log",
    "fmt",
    "umalloc",
    "fs",
    "pipe",
    "console",
    "files",
    "sysfile",
    "mkfs",
    "shell",
    "tools",
]