"""Small user programs working on a file system: cat, echo and ls."""

from __future__ import annotations

import sys
from typing import Callable, TypeVar

from .disk import FileDisk
from .fs import FileSystem, FsError, Inode
from .layout import DIRENT_SIZE, DIRSIZ, Dirent, FileType, Stat

T = TypeVar("T")

_PATHBUF = 512


def _with_inode(fs: FileSystem, path: str, fn: Callable[[Inode], T]) -> T:
    with fs.transaction():
        ip = fs.namei(path)
    try:
        fs.ilock(ip)
        try:
            return fn(ip)
        finally:
            fs.iunlock(ip)
    finally:
        with fs.transaction():
            fs.iput(ip)


def _contents(fs: FileSystem, path: str) -> tuple[Stat, bytes]:
    return _with_inode(fs, path, lambda ip: (fs.stati(ip), fs.readi(ip, 0, ip.size)))


def cat(fs: FileSystem, paths) -> bytes:
    """Concatenate the contents of the named files."""
    out = bytearray()
    for path in paths:
        try:
            _, data = _contents(fs, path)
        except FsError as exc:
            raise FsError(f"cannot open {path}") from exc
        out += data
    return bytes(out)


def echo(args) -> str:
    """The arguments separated by spaces and ended by a newline."""
    args = list(args)
    return " ".join(args) + "\n" if args else ""


def fmtname(path: str) -> str:
    """The last element of path, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str) -> list[str]:
    """Listing lines for path: the file itself, or each entry of a directory."""
    try:
        st, data = _with_inode(
            fs,
            path,
            lambda ip: (
                fs.stati(ip),
                fs.readi(ip, 0, ip.size) if ip.type == FileType.DIR else b"",
            ),
        )
    except FsError as exc:
        raise FsError(f"cannot open {path}") from exc

    if st.type == FileType.FILE:
        return [_line(path, st)]
    if st.type != FileType.DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _PATHBUF:
        return ["ls: path too long"]
    lines = []
    for off in range(0, len(data) - DIRENT_SIZE + 1, DIRENT_SIZE):
        de = Dirent.unpack(data[off : off + DIRENT_SIZE])
        if de.inum == 0:
            continue
        full = f"{path}/{de.name}"
        try:
            entry = _with_inode(fs, full, fs.stati)
        except FsError:
            lines.append(f"ls: cannot stat {full}")
            continue
        lines.append(_line(full, entry))
    return lines


def _write(data: bytes) -> None:
    out = getattr(sys.stdout, "buffer", None)
    if out is None:
        sys.stdout.write(data.decode("latin-1"))
    else:
        sys.stdout.flush()
        out.write(data)
        out.flush()


_USAGE = "usage: tools echo [args...] | cat fs.img [files...] | ls fs.img [paths...]"


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print(_USAGE, file=sys.stderr)
        return 1
    command, rest = args[0], args[1:]
    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command not in ("cat", "ls") or not rest:
        print(_USAGE, file=sys.stderr)
        return 1
    image, paths = rest[0], rest[1:]
    try:
        disk = FileDisk(image)
    except OSError as exc:
        print(f"{image}: {exc.strerror}", file=sys.stderr)
        return 1
    with disk:
        fs = FileSystem(disk)
        if command == "cat":
            if not paths:
                _write(sys.stdin.buffer.read())
                return 0
            for path in paths:
                try:
                    _write(cat(fs, [path]))
                except FsError:
                    print(f"cat: cannot open {path}")
                    return 1
            return 0
        status = 0
        for path in paths or ["."]:
            try:
                lines = ls(fs, path)
            except FsError:
                print(f"ls: cannot open {path}", file=sys.stderr)
                status = 1
                continue
            for line in lines:
                print(line)
        return status