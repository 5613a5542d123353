"""
Path classification and artifact naming.

Artifacts live beside their source, named by appending a fixed suffix to the
source's final path component:

- <name>.bak       plain copy of a file
- <name>.bak.d     mirror of a directory
- <name>.tar.zstd  zstd-compressed tar of a file or directory
"""

import os
import stat
from pathlib import Path
from typing import List, Tuple, Type

from localbak.models import BackupArtifact, BackupMode, Kind
from .errors import BackupError, InvalidTarget, SourceNotFound, UnrecognizedArtifact


# Recognised on restore only; never produced
LEGACY_SUFFIXES = {
    '.tar.zst': BackupMode.COMPRESSED_ARCHIVE,
}


def _known_suffixes() -> List[Tuple[str, BackupMode]]:
    """All recognised suffixes, longest first."""
    suffixes = [(mode.suffix, mode) for mode in BackupMode]
    suffixes.extend(LEGACY_SUFFIXES.items())
    return sorted(suffixes, key=lambda item: len(item[0]), reverse=True)


def classify(path, follow_symlinks: bool = False) -> Kind:
    """
    Determine the kind of a filesystem path.

    Args:
        path: Path to inspect
        follow_symlinks: Report the kind of a symlink's referent instead of
            SYMLINK (a dangling link is then MISSING)

    Returns:
        Kind of the path. Special files (FIFOs, sockets, devices) are
        reported as FILE; use require_existing() to reject them.
    """
    try:
        st = os.stat(path) if follow_symlinks else os.lstat(path)
    except FileNotFoundError:
        return Kind.MISSING
    except NotADirectoryError:
        return Kind.MISSING

    if stat.S_ISLNK(st.st_mode):
        return Kind.SYMLINK
    if stat.S_ISDIR(st.st_mode):
        return Kind.DIRECTORY
    return Kind.FILE


def require_existing(path) -> Kind:
    """
    Classify a backup target, following a top-level symlink to its referent.

    Args:
        path: Target path

    Returns:
        Kind.FILE or Kind.DIRECTORY

    Raises:
        SourceNotFound: If the path (or a symlink's referent) does not exist,
            or is not a regular file or directory
    """
    kind = classify(path)
    if kind is Kind.SYMLINK:
        kind = classify(path, follow_symlinks=True)
        if kind is Kind.MISSING:
            raise SourceNotFound(f"Symlink target does not exist: {path}")

    if kind is Kind.MISSING:
        raise SourceNotFound(f"Path does not exist: {path}")

    if kind is Kind.FILE and not stat.S_ISREG(os.stat(path).st_mode):
        raise SourceNotFound(f"Unsupported file type (neither file nor directory): {path}")

    return kind


def ensure_vacant(path, error_cls: Type[BackupError], what: str = 'Path'):
    """
    Raise error_cls if something (even a dangling symlink) occupies path.
    """
    if os.path.lexists(path):
        raise error_cls(f"{what} already exists: {path}")


def derive_artifact_name(source, mode: BackupMode) -> Path:
    """
    Compute the artifact path for a source and mode.

    Args:
        source: Source file or directory path
        mode: Backup mode whose suffix is appended

    Returns:
        Artifact path in the same parent directory as the source

    Raises:
        InvalidTarget: If the source has no final component, even as an
            absolute path (the filesystem root)
    """
    source = _named(source)
    return source.with_name(source.name + mode.suffix)


def _named(source) -> Path:
    """Return source as a Path with a usable final component."""
    source = Path(source)
    if source.name in ('', '.', '..'):
        source = Path(os.path.abspath(source))
    if not source.name:
        raise InvalidTarget(f"Cannot derive a backup name for {source}")
    return source


def derive_source_name(artifact) -> Tuple[Path, BackupMode]:
    """
    Invert derive_artifact_name().

    Args:
        artifact: Artifact path

    Returns:
        Tuple of (source path, backup mode)

    Raises:
        UnrecognizedArtifact: If the name carries no known suffix, or is only
            the suffix itself
    """
    artifact = Path(artifact)
    name = artifact.name

    for suffix, mode in _known_suffixes():
        if name.endswith(suffix) and len(name) > len(suffix):
            return artifact.with_name(name[:-len(suffix)]), mode

    raise UnrecognizedArtifact(f"Not a recognised backup artifact: {artifact}")


def find_artifacts(source) -> List[BackupArtifact]:
    """
    List existing artifacts for a source across every mode.

    Args:
        source: Source path (need not exist any more)

    Returns:
        BackupArtifact descriptors for each artifact present beside the
        source, in mode declaration order (legacy spellings last)
    """
    source = _named(source)
    suffixes = [mode.suffix for mode in BackupMode] + list(LEGACY_SUFFIXES)
    candidates = [source.with_name(source.name + suffix) for suffix in suffixes]

    return [
        BackupArtifact.from_path(candidate)
        for candidate in candidates
        if os.path.lexists(candidate)
    ]
