"""
Backup module for localbak.

This module handles the core backup functionality including:
- Path classification and artifact naming
- Compression (zstd over tar)
- Backup creation (plain copy, directory mirror, compressed archive)
- Restore
- Artifact cleanup
"""

from .executor import BackupEngine, create_backup
from .restore import RestoreEngine, restore_backup
from .cleanup import CleanupPolicy
from .events import EventLog
from .naming import derive_artifact_name, derive_source_name, find_artifacts
from .errors import (
    BackupError,
    SourceNotFound,
    ArtifactNotFound,
    InvalidTarget,
    ModeMismatch,
    ArtifactAlreadyExists,
    DestinationAlreadyExists,
    UnrecognizedArtifact,
    CodecError
)

__all__ = [
    'BackupEngine',
    'create_backup',
    'RestoreEngine',
    'restore_backup',
    'CleanupPolicy',
    'EventLog',
    'derive_artifact_name',
    'derive_source_name',
    'find_artifacts',
    'BackupError',
    'SourceNotFound',
    'ArtifactNotFound',
    'InvalidTarget',
    'ModeMismatch',
    'ArtifactAlreadyExists',
    'DestinationAlreadyExists',
    'UnrecognizedArtifact',
    'CodecError'
]
