from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class Kind(Enum):
    """Filesystem kind of a path, resolved at the moment of use"""
    FILE = 'file'
    DIRECTORY = 'directory'
    SYMLINK = 'symlink'
    MISSING = 'missing'


class BackupMode(Enum):
    """Backup representation, each with a fixed artifact suffix"""
    PLAIN_COPY = '.bak'
    DIRECTORY_MIRROR = '.bak.d'
    COMPRESSED_ARCHIVE = '.tar.zstd'

    @property
    def suffix(self) -> str:
        return self.value

    @classmethod
    def infer(cls, kind: Kind, compress: bool = False) -> 'BackupMode':
        """
        Pick the default mode for a target kind.

        Args:
            kind: Kind of the (symlink-resolved) target
            compress: Whether compression was requested

        Returns:
            COMPRESSED_ARCHIVE when compressing, otherwise DIRECTORY_MIRROR for
            directories and PLAIN_COPY for files
        """
        if compress:
            return cls.COMPRESSED_ARCHIVE
        if kind is Kind.DIRECTORY:
            return cls.DIRECTORY_MIRROR
        return cls.PLAIN_COPY


@dataclass(frozen=True)
class BackupArtifact:
    """Descriptor of a backup written to disk"""
    path: Path
    mode: BackupMode
    source: Path
    created_at: datetime = field(default_factory=lambda: datetime.now())

    @classmethod
    def from_path(cls, path) -> 'BackupArtifact':
        """
        Rediscover an artifact descriptor from its name and mtime.

        Raises:
            UnrecognizedArtifact: If the name carries no known suffix
            OSError: If the artifact cannot be stat'ed
        """
        from localbak.backup.naming import derive_source_name

        path = Path(path)
        source, mode = derive_source_name(path)
        created_at = datetime.fromtimestamp(path.lstat().st_mtime)
        return cls(path=path, mode=mode, source=source, created_at=created_at)

    def __repr__(self):
        return f'<BackupArtifact {self.path} mode={self.mode.name}>'
