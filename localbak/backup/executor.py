"""
Backup engine - creates backup artifacts beside their source.

Workflow:
1. Classify the target (following a top-level symlink)
2. Resolve the backup mode (explicit or inferred)
3. Derive the artifact name and refuse to clobber an existing artifact
4. Build the artifact under a hidden scratch name
5. Rename the scratch into place
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from localbak.models import BackupArtifact, BackupMode, Kind
from localbak.utils.staging import commit, copy_tree, scratch_path
from .compression import DEFAULT_COMPRESSION_LEVEL, archive_size, compress_stream, iter_entries
from .errors import ArtifactAlreadyExists, BackupError, ModeMismatch, error_kind
from .events import BackupCompleted, BackupStarted, Error, EventLog
from .naming import derive_artifact_name, ensure_vacant, require_existing


logger = logging.getLogger(__name__)


class BackupEngine:
    """
    Creates plain copies, directory mirrors and compressed archives.
    """

    def __init__(
        self,
        overwrite: bool = False,
        compression_level: Optional[int] = None,
        events: Optional[EventLog] = None
    ):
        """
        Initialize backup engine.

        Args:
            overwrite: Replace existing artifacts instead of refusing
            compression_level: zstd level for compressed archives
            events: Event sink (a private EventLog by default)
        """
        self.overwrite = overwrite
        self.compression_level = (
            DEFAULT_COMPRESSION_LEVEL if compression_level is None else compression_level
        )
        self.events = events or EventLog()
        self._writers = {
            BackupMode.PLAIN_COPY: self._write_plain_copy,
            BackupMode.DIRECTORY_MIRROR: self._write_mirror,
            BackupMode.COMPRESSED_ARCHIVE: self._write_archive,
        }

    def create(
        self,
        target,
        mode: Optional[BackupMode] = None,
        compress: bool = False,
        overwrite: Optional[bool] = None
    ) -> BackupArtifact:
        """
        Back up a file or directory.

        Args:
            target: Path to back up
            mode: Explicit backup mode; inferred from the target kind if None
            compress: Request COMPRESSED_ARCHIVE when inferring the mode
            overwrite: Per-call override of the engine's overwrite setting

        Returns:
            BackupArtifact describing the written artifact

        Raises:
            SourceNotFound: If the target does not exist
            ModeMismatch: If the explicit mode does not fit the target
            ArtifactAlreadyExists: If the artifact exists and overwrite is off
            CodecError: If the target cannot be archived
            OSError: If copying or writing fails
        """
        target = Path(target)
        overwrite = self.overwrite if overwrite is None else overwrite

        try:
            kind = require_existing(target)
            mode = self.resolve_mode(kind, mode, compress)
            artifact_path = derive_artifact_name(target, mode)

            if not overwrite:
                ensure_vacant(artifact_path, ArtifactAlreadyExists, 'Backup')

            self.events.emit(BackupStarted(target, mode))
            self._write(mode, target, artifact_path, overwrite)

        except (BackupError, OSError) as e:
            self.events.emit(Error(error_kind(e), str(e)))
            raise

        self.events.emit(BackupCompleted(artifact_path))
        return BackupArtifact(path=artifact_path, mode=mode, source=target)

    @staticmethod
    def resolve_mode(kind: Kind, mode: Optional[BackupMode] = None, compress: bool = False) -> BackupMode:
        """
        Pick the effective mode for a target kind.

        Raises:
            ModeMismatch: If an explicit mode conflicts with the kind or with
                a compression request
        """
        if mode is None:
            return BackupMode.infer(kind, compress)

        if compress and mode is not BackupMode.COMPRESSED_ARCHIVE:
            raise ModeMismatch(f"Compression requested but mode is {mode.name}")
        if mode is BackupMode.PLAIN_COPY and kind is Kind.DIRECTORY:
            raise ModeMismatch("Cannot make a plain copy of a directory")
        if mode is BackupMode.DIRECTORY_MIRROR and kind is not Kind.DIRECTORY:
            raise ModeMismatch("Cannot mirror a file as a directory")

        return mode

    def _write(self, mode: BackupMode, source: Path, artifact_path: Path, overwrite: bool):
        writer = self._writers.get(mode)
        if writer is None:
            raise ModeMismatch(f"No writer for backup mode {mode!r}")
        writer(source, artifact_path, overwrite)

    def _write_plain_copy(self, source: Path, artifact_path: Path, overwrite: bool):
        with scratch_path(artifact_path) as scratch:
            shutil.copy2(source, scratch)
            commit(scratch, artifact_path, replace=overwrite)

    def _write_mirror(self, source: Path, artifact_path: Path, overwrite: bool):
        with scratch_path(artifact_path, directory=True) as scratch:
            copy_tree(source, scratch)
            commit(scratch, artifact_path, replace=overwrite)

    def _write_archive(self, source: Path, artifact_path: Path, overwrite: bool):
        with scratch_path(artifact_path) as scratch:
            with open(scratch, 'wb') as f:
                count = compress_stream(iter_entries(source), f, self.compression_level)
                f.flush()
                os.fsync(f.fileno())

            size = archive_size(scratch)
            logger.debug(f"Archived {count} entries ({size / 1024 / 1024:.2f} MB)")
            commit(scratch, artifact_path, replace=overwrite)


def create_backup(
    target,
    mode: Optional[BackupMode] = None,
    compress: bool = False,
    overwrite: bool = False,
    events: Optional[EventLog] = None
) -> BackupArtifact:
    """
    Back up a single path with a one-off engine.

    See BackupEngine.create() for arguments and errors.
    """
    engine = BackupEngine(overwrite=overwrite, events=events)
    return engine.create(target, mode=mode, compress=compress)
