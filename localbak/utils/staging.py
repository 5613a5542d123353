"""
Scratch paths and commit-by-rename.

Every artifact and every restored path is first built under a hidden sibling
of its final name, then moved into place with a single rename. A crash or
error before the rename leaves nothing at the final name.
"""

import logging
import os
import shutil
import stat
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List


logger = logging.getLogger(__name__)

SCRATCH_TAG = 'localbak'


def _scratch_prefix(final: Path, tag: str = SCRATCH_TAG) -> str:
    return f'.{final.name}.{tag}-'


def _umasked(mode: int) -> int:
    """Apply the process umask to mode, as open() would."""
    umask = os.umask(0)
    os.umask(umask)
    return mode & ~umask


@contextmanager
def scratch_path(final, directory: bool = False) -> Iterator[Path]:
    """
    Reserve a hidden temporary sibling of final.

    The scratch file (or directory) is created empty in final's parent so a
    later rename stays on the same filesystem. Whatever is left at the scratch
    path when the block exits is removed, so a committed rename is the only
    way its contents survive.

    Args:
        final: The path the scratch will eventually be renamed to
        directory: Create a directory instead of a file

    Yields:
        Path to the scratch file or directory
    """
    final = Path(final)
    prefix = _scratch_prefix(final)

    if directory:
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=final.parent))
    else:
        fd, name = tempfile.mkstemp(prefix=prefix, dir=final.parent)
        os.close(fd)
        path = Path(name)
        # mkstemp creates 0600; match a normally created file
        os.chmod(path, _umasked(0o666))

    try:
        yield path
    finally:
        if os.path.lexists(path):
            discard(path)


def commit(staged, final, replace: bool = False):
    """
    Move a fully built scratch path to its final name.

    Args:
        staged: Scratch file or directory
        final: Destination name
        replace: Displace whatever currently sits at final. The old entry is
            renamed to a hidden sibling first and only deleted once the new
            one is in place; it is moved back if the rename fails.

    Raises:
        FileExistsError: If final exists and replace is False
        OSError: If the rename fails
    """
    staged, final = Path(staged), Path(final)

    if not os.path.lexists(final):
        os.replace(staged, final)
        return

    if not replace:
        raise FileExistsError(f"Refusing to replace existing path: {final}")

    # Same parent on every rename: moving a directory to another parent
    # needs write access to the directory itself
    held = _displaced_name(final)
    os.replace(final, held)

    try:
        os.replace(staged, final)
    except OSError:
        os.replace(held, final)
        raise

    discard(held)


def _displaced_name(final: Path) -> Path:
    """Unused hidden sibling name for an entry being replaced."""
    prefix = _scratch_prefix(final, f'{SCRATCH_TAG}-displaced')
    while True:
        candidate = final.with_name(prefix + uuid.uuid4().hex[:8])
        if not os.path.lexists(candidate):
            return candidate


def _skip_special_files(directory: str, names: list) -> list:
    """copytree ignore hook: leave out sockets, FIFOs and devices."""
    ignored = []
    for name in names:
        path = os.path.join(directory, name)
        mode = os.lstat(path).st_mode
        if not (stat.S_ISREG(mode) or stat.S_ISDIR(mode) or stat.S_ISLNK(mode)):
            logger.warning(f"Neither a file nor a directory, skipping: {path}")
            ignored.append(name)
    return ignored


def copy_tree(source, destination):
    """
    Structurally copy a directory tree into an existing directory.

    Symlinks are copied as links with their literal target. File contents,
    permission bits and times are copied with shutil.copy2. Errors for
    individual entries are collected and raised together once the walk ends.

    Raises:
        shutil.Error: If any entry failed to copy (an OSError subclass)
        OSError: If the source cannot be read
    """
    shutil.copytree(
        source,
        destination,
        symlinks=True,
        ignore=_skip_special_files,
        copy_function=shutil.copy2,
        dirs_exist_ok=True
    )


def remove_path(path):
    """
    Recursively delete a file, symlink or directory tree.

    Symlinks are removed themselves, never followed. Read-only directories
    inside the tree are made writable so their entries can be unlinked.

    Raises:
        OSError: If anything cannot be removed
    """
    path = Path(path)
    if not (path.is_dir() and not path.is_symlink()):
        path.unlink()
        return

    try:
        shutil.rmtree(path)
    except PermissionError:
        _make_tree_writable(path)
        shutil.rmtree(path)


def _make_tree_writable(root: Path):
    owner_rwx = stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR
    os.chmod(root, stat.S_IMODE(os.lstat(root).st_mode) | owner_rwx)

    for dirpath, dirnames, _ in os.walk(root):
        for name in dirnames:
            directory = os.path.join(dirpath, name)
            mode = os.lstat(directory).st_mode
            if stat.S_ISDIR(mode):
                os.chmod(directory, stat.S_IMODE(mode) | owner_rwx)


def create_parents(path) -> List[Path]:
    """
    Create the missing parent directories of path.

    Returns:
        The directories that were created, deepest first, for
        remove_created() to undo

    Raises:
        OSError: If a directory cannot be created (any already created are
            removed again)
    """
    missing = []
    parent = Path(path).parent
    while not os.path.lexists(parent):
        missing.append(parent)
        parent = parent.parent

    created = []
    try:
        for directory in reversed(missing):
            directory.mkdir()
            created.insert(0, directory)
    except OSError:
        remove_created(created)
        raise

    return created


def remove_created(directories: List[Path]):
    """Remove directories made by create_parents(), deepest first, if still empty."""
    for directory in directories:
        try:
            directory.rmdir()
        except OSError as e:
            logger.warning(f"Failed to remove created directory {directory}: {e}")


def discard(path) -> bool:
    """
    Best-effort removal of scratch state.

    Failures are logged and swallowed so they never mask the error that made
    the scratch path obsolete.

    Returns:
        True if the path is gone afterwards
    """
    try:
        remove_path(path)
        return True
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Failed to remove scratch path {path}: {e}")
        return False
