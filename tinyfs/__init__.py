"""A small Unix-style file system with a log, inodes, directories and tools."""

__version__ = "0.1.0"