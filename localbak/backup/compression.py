"""
Compressed archive codec.

An archive is a PAX tar stream wrapped in a single zstd frame. Entries are
rooted at the backed-up path's final component:

- file target:      config.yaml
- directory target: project, project/a.txt, project/sub, project/sub/b.txt

so a single file is simply a one-entry archive, and every archive has exactly
one top-level name.
"""

import logging
import os
import shutil
import stat
import tarfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Tuple

import zstandard

from .errors import CodecError


logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 3


class EntryType(Enum):
    FILE = 'file'
    DIRECTORY = 'directory'
    SYMLINK = 'symlink'


@dataclass
class ArchiveEntry:
    """
    One record of an archive.

    Regular files carry an opener returning their content stream; for entries
    read back from an archive that stream is only valid until the next entry
    is requested.
    """
    path: str
    type: EntryType
    mode: int
    size: int = 0
    mtime: float = 0.0
    link_target: Optional[str] = None
    opener: Optional[Callable[[], BinaryIO]] = field(default=None, repr=False, compare=False)

    def open(self) -> BinaryIO:
        if self.opener is None:
            raise CodecError(f"Entry has no content: {self.path}")
        return self.opener()

    def read_bytes(self) -> bytes:
        with self.open() as content:
            return content.read()


@contextmanager
def _codec_errors(what: str):
    """Translate zstd and tar failures into CodecError."""
    try:
        yield
    except zstandard.ZstdError as e:
        raise CodecError(f"Corrupt zstd stream in {what}: {e}") from e
    except tarfile.TarError as e:
        raise CodecError(f"Malformed tar data in {what}: {e}") from e


def _entry_from_stat(arcname: str, path: str, st: os.stat_result) -> Optional[ArchiveEntry]:
    mode = stat.S_IMODE(st.st_mode)

    if stat.S_ISLNK(st.st_mode):
        return ArchiveEntry(arcname, EntryType.SYMLINK, mode, mtime=st.st_mtime,
                            link_target=os.readlink(path))
    if stat.S_ISDIR(st.st_mode):
        return ArchiveEntry(arcname, EntryType.DIRECTORY, mode, mtime=st.st_mtime)
    if stat.S_ISREG(st.st_mode):
        return ArchiveEntry(arcname, EntryType.FILE, mode, size=st.st_size, mtime=st.st_mtime,
                            opener=partial(open, path, 'rb'))
    return None


def iter_entries(source) -> Iterator[ArchiveEntry]:
    """
    Walk a file or directory tree, yielding archive entries.

    The top-level path is followed if it is a symlink; symlinks below it are
    recorded with their literal target and never followed. Sockets, FIFOs and
    devices are skipped with a warning.

    Args:
        source: File or directory to archive

    Yields:
        ArchiveEntry records, parents before children, siblings sorted by name

    Raises:
        CodecError: If the source itself is not a regular file or directory
        OSError: If the tree cannot be read
    """
    source = Path(os.path.abspath(source))
    st = os.stat(source)

    entry = _entry_from_stat(source.name, str(source), st)
    if entry is None:
        raise CodecError(f"Cannot archive special file: {source}")

    yield entry
    if entry.type is EntryType.DIRECTORY:
        yield from _walk(source, source.name)


def _walk(directory: Path, prefix: str) -> Iterator[ArchiveEntry]:
    with os.scandir(directory) as it:
        children = sorted(it, key=lambda e: e.name)

    for child in children:
        arcname = f"{prefix}/{child.name}"
        entry = _entry_from_stat(arcname, child.path, child.stat(follow_symlinks=False))

        if entry is None:
            logger.warning(f"Neither a file nor a directory, skipping: {child.path}")
            continue

        yield entry
        if entry.type is EntryType.DIRECTORY:
            yield from _walk(Path(child.path), arcname)


def _normalize_member_name(name: str) -> str:
    """
    Validate an archive member name and return it in canonical form.

    Raises:
        CodecError: If the name is empty, absolute, or escapes the archive root
    """
    pure = PurePosixPath(name)
    if pure.is_absolute():
        raise CodecError(f"Absolute path in archive: {name}")

    parts = [part for part in pure.parts if part != '.']
    if not parts:
        raise CodecError(f"Empty path in archive: {name!r}")
    if '..' in parts:
        raise CodecError(f"Path escapes archive root: {name}")

    return '/'.join(parts)


def _to_tarinfo(entry: ArchiveEntry) -> tarfile.TarInfo:
    info = tarfile.TarInfo(_normalize_member_name(entry.path))
    info.mode = entry.mode
    info.mtime = int(entry.mtime)

    if entry.type is EntryType.FILE:
        info.type = tarfile.REGTYPE
        info.size = entry.size
    elif entry.type is EntryType.DIRECTORY:
        info.type = tarfile.DIRTYPE
    elif entry.type is EntryType.SYMLINK:
        info.type = tarfile.SYMTYPE
        info.linkname = entry.link_target
    else:
        raise CodecError(f"Unsupported entry type: {entry.type}")

    return info


def compress_stream(
    entries: Iterable[ArchiveEntry],
    fileobj: BinaryIO,
    level: int = DEFAULT_COMPRESSION_LEVEL
) -> int:
    """
    Write entries as a zstd-compressed tar stream.

    Args:
        entries: Entries to store, in order
        fileobj: Writable binary stream; left open
        level: zstd compression level

    Returns:
        Number of entries written

    Raises:
        CodecError: If an entry cannot be represented
        OSError: If reading an entry or writing the stream fails
    """
    count = 0
    compressor = zstandard.ZstdCompressor(level=level)

    with compressor.stream_writer(fileobj, closefd=False) as writer:
        with tarfile.open(fileobj=writer, mode='w|', format=tarfile.PAX_FORMAT) as tar:
            for entry in entries:
                info = _to_tarinfo(entry)
                if entry.type is EntryType.FILE:
                    with entry.open() as content:
                        tar.addfile(info, content)
                else:
                    tar.addfile(info)
                count += 1
                logger.debug(f"Archived {info.name}")

    return count


def decompress_stream(fileobj: BinaryIO) -> Iterator[ArchiveEntry]:
    """
    Read entries back from a zstd-compressed tar stream.

    A file entry's content must be read before advancing to the next entry.

    Args:
        fileobj: Readable binary stream; left open

    Yields:
        ArchiveEntry records in archive order

    Raises:
        CodecError: On a corrupt zstd frame, malformed tar data, unsafe member
            names, or member types other than file, directory and symlink
    """
    decompressor = zstandard.ZstdDecompressor()

    with _codec_errors('archive'):
        with decompressor.stream_reader(fileobj, closefd=False) as reader:
            with tarfile.open(fileobj=reader, mode='r|') as tar:
                for member in tar:
                    yield _from_tarinfo(tar, member)


def _from_tarinfo(tar: tarfile.TarFile, member: tarfile.TarInfo) -> ArchiveEntry:
    name = _normalize_member_name(member.name)
    mode = member.mode & 0o7777

    if member.isreg():
        return ArchiveEntry(name, EntryType.FILE, mode, size=member.size, mtime=member.mtime,
                            opener=partial(tar.extractfile, member))
    if member.isdir():
        return ArchiveEntry(name, EntryType.DIRECTORY, mode, mtime=member.mtime)
    if member.issym():
        return ArchiveEntry(name, EntryType.SYMLINK, mode, mtime=member.mtime,
                            link_target=member.linkname)

    raise CodecError(f"Unsupported archive member type for {member.name}")


def _safe_target(root: Path, parts: List[str]) -> Path:
    """Resolve an entry path under root, refusing to traverse symlinks."""
    current = root
    for part in parts[:-1]:
        current = current / part
        if current.is_symlink():
            raise CodecError(f"Archive entry traverses a symlink: {'/'.join(parts)}")
    return current / parts[-1]


def extract_entries(entries: Iterable[ArchiveEntry], root) -> str:
    """
    Materialise archive entries beneath a directory.

    Directory permission bits are applied after all entries are written so a
    read-only directory does not block its own contents.

    Args:
        entries: Entries, e.g. from decompress_stream()
        root: Existing directory to extract into

    Returns:
        The archive's single top-level name (now present under root)

    Raises:
        CodecError: If the archive is empty, has several top-level names,
            repeats a path, or is otherwise malformed
        OSError: If writing fails
    """
    root = Path(root)
    top_names = set()
    seen = set()
    directories: List[Tuple[Path, int]] = []

    for entry in entries:
        parts = entry.path.split('/')
        top_names.add(parts[0])
        if len(top_names) > 1:
            raise CodecError(f"Archive has more than one top-level entry: {sorted(top_names)}")
        if entry.path in seen:
            raise CodecError(f"Duplicate archive entry: {entry.path}")
        seen.add(entry.path)

        target = _safe_target(root, parts)

        if entry.type is EntryType.DIRECTORY:
            target.mkdir(parents=True, exist_ok=True)
            directories.append((target, entry.mode))
            continue

        target.parent.mkdir(parents=True, exist_ok=True)

        if entry.type is EntryType.SYMLINK:
            os.symlink(entry.link_target, target)
        else:
            with _codec_errors(entry.path):
                with entry.open() as content, open(target, 'xb') as out:
                    shutil.copyfileobj(content, out)
            os.chmod(target, entry.mode)
            os.utime(target, (entry.mtime, entry.mtime))

    if not top_names:
        raise CodecError("Archive is empty")

    for directory, mode in reversed(directories):
        os.chmod(directory, mode)

    return top_names.pop()


def archive_size(archive_path) -> int:
    """
    Size of an archive file in bytes.

    Raises:
        OSError: If the file cannot be accessed
    """
    return os.path.getsize(archive_path)
