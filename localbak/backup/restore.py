"""
Restore engine - turns a backup artifact back into a live path.

The artifact's name alone decides what to do: the suffix gives the backup
mode, and stripping it gives the default destination.
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Optional

from localbak.models import BackupMode, Kind
from localbak.utils.staging import (
    commit, copy_tree, create_parents, remove_created, scratch_path
)
from .compression import decompress_stream, extract_entries
from .errors import (
    ArtifactNotFound, BackupError, DestinationAlreadyExists, InvalidTarget,
    UnrecognizedArtifact, error_kind
)
from .events import Error, EventLog, RestoreCompleted, RestoreStarted
from .naming import classify, derive_source_name, ensure_vacant


logger = logging.getLogger(__name__)

# On-disk kind each artifact must have
EXPECTED_KIND = {
    BackupMode.PLAIN_COPY: Kind.FILE,
    BackupMode.DIRECTORY_MIRROR: Kind.DIRECTORY,
    BackupMode.COMPRESSED_ARCHIVE: Kind.FILE,
}


class RestoreEngine:
    """
    Restores plain copies, directory mirrors and compressed archives.
    """

    def __init__(self, overwrite: bool = False, events: Optional[EventLog] = None):
        """
        Initialize restore engine.

        Args:
            overwrite: Replace an existing destination instead of refusing
            events: Event sink (a private EventLog by default)
        """
        self.overwrite = overwrite
        self.events = events or EventLog()
        self._readers = {
            BackupMode.PLAIN_COPY: self._restore_plain_copy,
            BackupMode.DIRECTORY_MIRROR: self._restore_mirror,
            BackupMode.COMPRESSED_ARCHIVE: self._restore_archive,
        }

    def restore(self, artifact, destination=None, overwrite: Optional[bool] = None) -> Path:
        """
        Restore a backup artifact.

        Args:
            artifact: Path of the .bak / .bak.d / .tar.zstd artifact
            destination: Where to restore to; defaults to the artifact name
                with its suffix stripped
            overwrite: Per-call override of the engine's overwrite setting

        Returns:
            The restored path

        Raises:
            UnrecognizedArtifact: If the name has no known suffix or the
                artifact's on-disk kind does not match it
            ArtifactNotFound: If the artifact does not exist
            InvalidTarget: If the destination is, contains, or lies inside
                the artifact
            DestinationAlreadyExists: If the destination exists and overwrite
                is off
            CodecError: If a compressed artifact is corrupt
            OSError: If reading or writing fails
        """
        artifact = Path(artifact)
        overwrite = self.overwrite if overwrite is None else overwrite
        created = []

        try:
            source, mode = derive_source_name(artifact)
            destination = source if destination is None else Path(destination)

            self._check_artifact(artifact, mode)
            self._check_overlap(artifact, destination)
            if not overwrite:
                ensure_vacant(destination, DestinationAlreadyExists, 'Destination')

            self.events.emit(RestoreStarted(artifact, destination))
            created = create_parents(destination)
            self._read(mode, artifact, destination, overwrite)

        except (BackupError, OSError) as e:
            remove_created(created)
            self.events.emit(Error(error_kind(e), str(e)))
            raise

        self.events.emit(RestoreCompleted(destination))
        return destination

    @staticmethod
    def _check_artifact(artifact: Path, mode: BackupMode):
        kind = classify(artifact, follow_symlinks=True)
        if kind is Kind.MISSING:
            raise ArtifactNotFound(f"Backup does not exist: {artifact}")

        expected = EXPECTED_KIND[mode]
        if kind is not expected:
            raise UnrecognizedArtifact(
                f"{artifact} is named like a {mode.name} backup but is not a {expected.value}"
            )

    @staticmethod
    def _check_overlap(artifact: Path, destination: Path):
        """Refuse destinations that are, contain, or sit inside the artifact."""
        artifact_real = os.path.realpath(artifact)
        destination_real = os.path.realpath(destination)

        if artifact_real == destination_real:
            raise InvalidTarget(f"Cannot restore a backup onto itself: {artifact}")
        if destination_real.startswith(artifact_real + os.sep):
            raise InvalidTarget(f"Cannot restore into the backup itself: {destination}")
        if artifact_real.startswith(destination_real.rstrip(os.sep) + os.sep):
            raise InvalidTarget(f"Destination {destination} contains the backup {artifact}")

    def _read(self, mode: BackupMode, artifact: Path, destination: Path, overwrite: bool):
        reader = self._readers.get(mode)
        if reader is None:
            raise UnrecognizedArtifact(f"No reader for backup mode {mode!r}")
        reader(artifact, destination, overwrite)

    def _restore_plain_copy(self, artifact: Path, destination: Path, overwrite: bool):
        with scratch_path(destination) as scratch:
            shutil.copy2(artifact, scratch)
            commit(scratch, destination, replace=overwrite)

    def _restore_mirror(self, artifact: Path, destination: Path, overwrite: bool):
        with scratch_path(destination, directory=True) as scratch:
            copy_tree(artifact, scratch)
            commit(scratch, destination, replace=overwrite)

    def _restore_archive(self, artifact: Path, destination: Path, overwrite: bool):
        # The workspace holds the archive's single root entry until it is
        # renamed to the destination
        with scratch_path(destination, directory=True) as workspace:
            with open(artifact, 'rb') as f:
                root_name = extract_entries(decompress_stream(f), workspace)

            logger.debug(f"Extracted archive root {root_name!r} from {artifact}")
            staged = workspace / root_name

            # Renaming a directory out of the workspace needs write access to
            # it; its archived mode is applied once it is in place
            st = os.lstat(staged)
            if stat.S_ISDIR(st.st_mode):
                os.chmod(staged, stat.S_IMODE(st.st_mode) | stat.S_IWUSR)

            commit(staged, destination, replace=overwrite)

            if stat.S_ISDIR(st.st_mode):
                os.chmod(destination, stat.S_IMODE(st.st_mode))


def restore_backup(artifact, destination=None, overwrite: bool = False,
                   events: Optional[EventLog] = None) -> Path:
    """
    Restore a single artifact with a one-off engine.

    See RestoreEngine.restore() for arguments and errors.
    """
    engine = RestoreEngine(overwrite=overwrite, events=events)
    return engine.restore(artifact, destination=destination)
