"""
Error taxonomy for backup and restore operations.

I/O failures are not wrapped: they propagate as the builtin OSError.
"""


class BackupError(Exception):
    """Base class for every error raised by the backup engines."""
    kind = 'BackupError'


class SourceNotFound(BackupError):
    """Raised when the path to back up does not exist or cannot be backed up."""
    kind = 'SourceNotFound'


class ArtifactNotFound(SourceNotFound):
    """Raised when the artifact to restore from does not exist."""
    kind = 'ArtifactNotFound'


class InvalidTarget(BackupError):
    """Raised when no artifact name can be derived for a path (e.g. '/')."""
    kind = 'InvalidTarget'


class ModeMismatch(BackupError):
    """Raised when an explicit backup mode does not fit the target kind."""
    kind = 'ModeMismatch'


class ArtifactAlreadyExists(BackupError):
    """Raised when a backup would replace an existing artifact."""
    kind = 'ArtifactAlreadyExists'


class DestinationAlreadyExists(BackupError):
    """Raised when a restore would replace an existing live path."""
    kind = 'DestinationAlreadyExists'


class UnrecognizedArtifact(BackupError):
    """Raised when a path is not named or shaped like a known artifact."""
    kind = 'UnrecognizedArtifact'


class CodecError(BackupError):
    """Raised when a compressed archive is malformed or unsafe."""
    kind = 'CodecError'


def error_kind(exc: BaseException) -> str:
    """Short taxonomy name for an exception, 'IOError' for OS-level failures."""
    if isinstance(exc, BackupError):
        return exc.kind
    if isinstance(exc, OSError):
        return 'IOError'
    return type(exc).__name__
