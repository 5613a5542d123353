"""
Shared pytest fixtures for localbak tests.

This module provides fixtures for:
- Sample files and directory trees (nested dirs, symlinks, empty dirs)
- Tree snapshots for round-trip comparisons
- Event logs
- Logging isolation between tests
"""

import logging
import os
import stat
from pathlib import Path

import pytest

from localbak.backup.events import EventLog


CONFIG_CONTENT = b"server:\n  host: localhost\n  port: 8080\n"


@pytest.fixture(autouse=True)
def reset_logging():
    """
    Drop handlers installed by configure_logging().

    CLI tests bind console handlers to CliRunner's temporary streams, which
    are closed once the invocation ends.
    """
    yield
    logger = logging.getLogger('localbak')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a single config file.

    Creates:
    - config.yaml (mode 0640)
    """
    path = tmp_path / 'config.yaml'
    path.write_bytes(CONFIG_CONTENT)
    os.chmod(path, 0o640)
    return path


@pytest.fixture
def sample_tree(tmp_path):
    """
    Create a directory tree exercising every supported entry type.

    Creates:
    - project/a.txt
    - project/run.sh (mode 0755)
    - project/sub/b.txt
    - project/sub/deeper/c.bin (binary content)
    - project/sub/readonly.txt (mode 0444)
    - project/empty/ (empty directory, mode 0700)
    - project/link_to_a -> a.txt (relative symlink)
    - project/sub/outside -> /nonexistent/outside/target (dangling absolute symlink)
    """
    root = tmp_path / 'project'
    (root / 'sub' / 'deeper').mkdir(parents=True)
    (root / 'empty').mkdir()
    os.chmod(root / 'empty', 0o700)

    (root / 'a.txt').write_text('alpha\n')
    (root / 'run.sh').write_text('#!/bin/sh\necho hi\n')
    os.chmod(root / 'run.sh', 0o755)
    (root / 'sub' / 'b.txt').write_text('bravo\n')
    (root / 'sub' / 'deeper' / 'c.bin').write_bytes(bytes(range(256)) * 64)
    (root / 'sub' / 'readonly.txt').write_text('do not touch\n')
    os.chmod(root / 'sub' / 'readonly.txt', 0o444)

    os.symlink('a.txt', root / 'link_to_a')
    os.symlink('/nonexistent/outside/target', root / 'sub' / 'outside')

    return root


def _snapshot(root):
    """Map every path below root to (type, permission bits, content or link target)."""
    root = Path(root)
    result = {}

    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = path.relative_to(root).as_posix()
            st = os.lstat(path)

            if stat.S_ISLNK(st.st_mode):
                result[rel] = ('symlink', None, os.readlink(path))
            elif stat.S_ISDIR(st.st_mode):
                result[rel] = ('dir', stat.S_IMODE(st.st_mode), None)
            else:
                result[rel] = ('file', stat.S_IMODE(st.st_mode), path.read_bytes())

    return result


@pytest.fixture
def snapshot():
    """Return a function that snapshots a directory tree for comparison."""
    return _snapshot


@pytest.fixture
def event_log():
    """A fresh EventLog to pass to engines."""
    return EventLog()
