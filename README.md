# tinyfs

A small, self-contained Unix-style file system in plain Python. It models
a block-based file system with a superblock, a write-ahead log, inode
blocks, a free-block bitmap and data blocks; a buffer cache; transactions
committed through the log; inodes with direct and indirect blocks;
directories and path lookup. Alongside it come a disk image builder and a
few simple tools (`cat`, `echo`, `ls`, `grep`).

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Building a disk image

`tinyfs-mkfs` creates a fresh 1000-block image and copies host files into
its root directory. A leading `_` in a file name is dropped when it is
stored, and names are cut to 14 characters.

```
tinyfs-mkfs fs.img README _cat _ls
```

From Python, `tinyfs.mkfs.build_image` takes a mapping (or an iterable of
pairs) of names to contents and returns the image bytes. `ImageBuilder`
gives finer control through `ialloc`, `iappend`, `add_file` and `finish`.

## Working with an image

```python
from tinyfs.mkfs import build_image
from tinyfs.disk import MemoryDisk
from tinyfs.fs import FileSystem

image = build_image({"hello.txt": b"hello, world\n"})
fs = FileSystem(MemoryDisk(image))

with fs.transaction():
    ip = fs.namei("/hello.txt")
    fs.ilock(ip)
    print(fs.readi(ip, 0, 64))
    fs.iunlockput(ip)
```

The building blocks, from the bottom up:

- `tinyfs.disk`: `MemoryDisk` keeps blocks in memory (`read_block`,
  `write_block`, `to_bytes`); `FileDisk` works on an existing image file and
  is a context manager.
- `tinyfs.bio.BufferCache`: a fixed pool of locked buffers (`bread`,
  `bwrite`, `brelse`, and the `block` context manager).
- `tinyfs.log.Log`: groups changes into transactions (`begin_op`,
  `end_op`, `log_write`, `transaction`). When a `FileSystem` is opened the
  log is recovered, so a transaction that was committed but not yet
  installed is written to its home blocks.
- `tinyfs.fs.FileSystem`: inode operations (`ialloc`, `iget`, `idup`,
  `ilock`, `iunlock`, `iput`, `iunlockput`, `iupdate`, `readi`, `writei`,
  `stati`), directory operations (`dirlookup`, `dirlink`) and path lookup
  (`namei`, `nameiparent`). Failures raise `FsError`; broken internal
  state raises `tinyfs.bio.Panic`.
- `tinyfs.file.FileTable`: reference-counted open files on inodes
  (`open_inode`) and pipes (`pipe`), with `read`, `write`, `stat`, `dup`
  and `close`.
- `tinyfs.pipe.Pipe`: a 512-byte bounded byte channel.
- `tinyfs.kalloc.PageAllocator`: hands out 4096-byte page addresses from a
  free list.

## Tools

```
tinyfs-grep PATTERN [FILE ...]
tinyfs-tool echo [WORD ...]
tinyfs-tool cat IMAGE [PATH ...]
tinyfs-tool ls IMAGE [PATH ...]
```

`tinyfs-grep` works on host files (or standard input) and understands the
operators `^`, `.`, `*` and `$`. `tinyfs-tool cat` and `ls` read paths
inside an image; `ls` lists the root directory when no path is given, and
`cat` with no path copies standard input. The same tools are available as
`tinyfs.grep.match` / `grep` and `tinyfs.tools.cat`, `echo`, `ls` and
`fmtname`.

## Console and keyboard

`tinyfs.kbd.decode` and `KeyboardDecoder` turn PC keyboard scan codes into
characters. `tinyfs.console.Console` provides line-edited input
(backspace, Ctrl-U kill line, Ctrl-D end of input) through `interrupt` and
`read`, echoing to an output buffer and a `CgaScreen`. `format_kernel`
handles `%d %x %p %s %%`; `tinyfs.printf.format_user` adds `%c`.

## What it does not do

There are no processes or system calls: no open, mkdir, link, unlink or
chdir operations, and no command that creates, changes or removes files in
an existing image. Images are built whole with `tinyfs-mkfs`; changes
beyond that are made from Python through `FileSystem` and `FileTable`.
Only one bitmap block is written by the image builder, and the file
system is a fixed 1000 blocks.