"""
Cleanup policy for backup artifacts.

Removes an artifact once the caller has explicitly opted in, typically right
after a successful restore.
"""

import logging
from pathlib import Path
from typing import Optional

from localbak.utils.staging import remove_path
from .errors import error_kind
from .events import ArtifactRemoved, Error, EventLog


logger = logging.getLogger(__name__)


class CleanupPolicy:
    """
    Deletes backup artifacts on request.
    """

    def __init__(self, events: Optional[EventLog] = None):
        """
        Initialize cleanup policy.

        Args:
            events: Event sink (a private EventLog by default)
        """
        self.events = events or EventLog()

    def remove(self, artifact):
        """
        Recursively delete an artifact (file, symlink or directory tree).

        Args:
            artifact: Artifact path

        Raises:
            OSError: If the artifact cannot be removed
        """
        artifact = Path(artifact)
        remove_path(artifact)
        self.events.emit(ArtifactRemoved(artifact))

    def remove_after_restore(self, artifact) -> bool:
        """
        Delete an artifact whose restore already succeeded.

        A failure is reported as an Error event and a warning, but never
        raised: the restore stands regardless.

        Returns:
            True if the artifact was removed
        """
        try:
            self.remove(artifact)
            return True
        except OSError as e:
            self.events.emit(Error(error_kind(e), f"Failed to remove backup {artifact}: {e}"))
            logger.warning(f"Restore succeeded but backup {artifact} was kept: {e}")
            return False
