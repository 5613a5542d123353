"""
Unit tests for scratch paths and commit-by-rename (localbak/utils/staging.py).
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from localbak.utils import staging
from localbak.utils.staging import (
    commit,
    copy_tree,
    create_parents,
    discard,
    remove_created,
    remove_path,
    scratch_path
)


class TestScratchPath:
    """Test scratch_path."""

    def test_scratch_file_is_hidden_sibling(self, tmp_path):
        final = tmp_path / 'report.txt'

        with scratch_path(final) as scratch:
            assert scratch.parent == tmp_path
            assert scratch.name.startswith('.report.txt.localbak-')
            assert scratch.is_file()
            assert scratch.stat().st_mode & 0o777 == staging._umasked(0o666)

        assert not scratch.exists()
        assert not final.exists()

    def test_scratch_directory(self, tmp_path):
        final = tmp_path / 'tree'

        with scratch_path(final, directory=True) as scratch:
            assert scratch.is_dir()
            (scratch / 'child.txt').write_text('data')

        assert not scratch.exists()

    def test_scratch_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with scratch_path(tmp_path / 'x') as scratch:
                scratch.write_text('partial')
                raise RuntimeError("boom")

        assert os.listdir(tmp_path) == []

    def test_committed_scratch_survives(self, tmp_path):
        final = tmp_path / 'report.txt'

        with scratch_path(final) as scratch:
            scratch.write_text('done')
            commit(scratch, final)

        assert final.read_text() == 'done'
        assert os.listdir(tmp_path) == ['report.txt']


class TestCommit:
    """Test commit."""

    def test_commit_to_vacant_name(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.write_text('new')

        commit(staged, tmp_path / 'final')

        assert (tmp_path / 'final').read_text() == 'new'
        assert not staged.exists()

    def test_commit_refuses_existing(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.write_text('new')
        final = tmp_path / 'final'
        final.write_text('old')

        with pytest.raises(FileExistsError):
            commit(staged, final)

        assert final.read_text() == 'old'
        assert staged.exists()

    def test_commit_replaces_directory_with_directory(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.mkdir()
        (staged / 'new.txt').write_text('new')
        final = tmp_path / 'final'
        final.mkdir()
        (final / 'old.txt').write_text('old')

        commit(staged, final, replace=True)

        assert sorted(os.listdir(final)) == ['new.txt']
        assert sorted(os.listdir(tmp_path)) == ['final']

    def test_commit_replaces_file_with_directory(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.mkdir()
        final = tmp_path / 'final'
        final.write_text('old')

        commit(staged, final, replace=True)

        assert final.is_dir()

    def test_failed_replace_restores_original(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.write_text('new')
        final = tmp_path / 'final'
        final.write_text('old')

        real_replace = os.replace

        def flaky_replace(src, dst):
            if os.fspath(src) == os.fspath(staged):
                raise OSError("injected rename failure")
            return real_replace(src, dst)

        with patch('localbak.utils.staging.os.replace', side_effect=flaky_replace):
            with pytest.raises(OSError, match="injected"):
                commit(staged, final, replace=True)

        assert final.read_text() == 'old'
        assert sorted(os.listdir(tmp_path)) == ['final', 'staged']

    def test_replace_renames_within_parent(self, tmp_path):
        """The displaced entry is parked beside final, never in a subdirectory."""
        staged = tmp_path / 'staged'
        staged.mkdir()
        final = tmp_path / 'final'
        final.mkdir()
        (final / 'old.txt').write_text('old')
        os.chmod(final, 0o555)
        renames = []
        real_replace = os.replace

        def recording_replace(src, dst):
            renames.append((Path(src).parent, Path(dst).parent))
            return real_replace(src, dst)

        with patch('localbak.utils.staging.os.replace', side_effect=recording_replace):
            commit(staged, final, replace=True)

        assert renames == [(tmp_path, tmp_path), (tmp_path, tmp_path)]
        assert os.listdir(final) == []
        assert sorted(os.listdir(tmp_path)) == ['final']

    def test_failed_displacement_leaves_nothing(self, tmp_path):
        staged = tmp_path / 'staged'
        staged.write_text('new')
        final = tmp_path / 'final'
        final.write_text('old')

        with patch('localbak.utils.staging.os.replace', side_effect=PermissionError("denied")):
            with pytest.raises(PermissionError):
                commit(staged, final, replace=True)

        assert final.read_text() == 'old'
        assert sorted(os.listdir(tmp_path)) == ['final', 'staged']


class TestCopyTree:
    """Test copy_tree."""

    def test_copy_tree(self, sample_tree, tmp_path, snapshot):
        destination = tmp_path / 'copy'
        destination.mkdir()

        copy_tree(sample_tree, destination)

        assert snapshot(destination) == snapshot(sample_tree)

    def test_copy_tree_skips_special_files(self, sample_tree, tmp_path, caplog):
        os.mkfifo(sample_tree / 'sub' / 'pipe')
        destination = tmp_path / 'copy'
        destination.mkdir()

        with caplog.at_level(logging.WARNING, logger='localbak'):
            copy_tree(sample_tree, destination)

        assert not os.path.lexists(destination / 'sub' / 'pipe')
        assert 'skipping' in caplog.text


class TestRemovePath:
    """Test remove_path and discard."""

    def test_remove_file(self, sample_file):
        remove_path(sample_file)
        assert not sample_file.exists()

    def test_remove_tree(self, sample_tree):
        remove_path(sample_tree)
        assert not os.path.lexists(sample_tree)

    def test_remove_symlink_to_directory(self, sample_tree, tmp_path):
        link = tmp_path / 'link'
        os.symlink(sample_tree, link)

        remove_path(link)

        assert not os.path.lexists(link)
        assert sample_tree.is_dir()

    def test_discard_missing_path(self, tmp_path):
        assert discard(tmp_path / 'missing') is True

    def test_discard_failure_is_logged(self, sample_file, caplog):
        with patch('localbak.utils.staging.remove_path', side_effect=PermissionError("denied")):
            with caplog.at_level(logging.WARNING, logger='localbak'):
                assert discard(sample_file) is False

        assert sample_file.exists()
        assert 'Failed to remove scratch path' in caplog.text

    def test_remove_tree_with_readonly_directories(self, tmp_path):
        root = tmp_path / 'locked'
        (root / 'inner').mkdir(parents=True)
        (root / 'inner' / 'file.txt').write_text('data')
        os.chmod(root / 'inner', 0o555)
        os.chmod(root, 0o555)
        real_rmtree = shutil.rmtree
        calls = []

        def rmtree_denied_once(path, *args, **kwargs):
            calls.append(path)
            if len(calls) == 1:
                raise PermissionError("denied")
            return real_rmtree(path, *args, **kwargs)

        with patch('localbak.utils.staging.shutil.rmtree', side_effect=rmtree_denied_once):
            remove_path(root)

        assert len(calls) == 2
        assert not os.path.lexists(root)

    def test_make_tree_writable_skips_symlinks(self, sample_tree, tmp_path):
        target = tmp_path / 'elsewhere'
        target.mkdir()
        os.chmod(target, 0o500)
        os.symlink(target, sample_tree / 'dirlink')
        os.chmod(sample_tree / 'sub', 0o555)

        staging._make_tree_writable(sample_tree)

        assert (sample_tree / 'sub').stat().st_mode & stat.S_IWUSR
        assert target.stat().st_mode & 0o777 == 0o500
        os.chmod(target, 0o700)


class TestCreateParents:
    """Test create_parents and remove_created."""

    def test_creates_missing_parents(self, tmp_path):
        created = create_parents(tmp_path / 'a' / 'b' / 'out.txt')

        assert created == [tmp_path / 'a' / 'b', tmp_path / 'a']
        assert (tmp_path / 'a' / 'b').is_dir()

    def test_nothing_to_create(self, tmp_path):
        assert create_parents(tmp_path / 'out.txt') == []

    def test_remove_created(self, tmp_path):
        created = create_parents(tmp_path / 'a' / 'b' / 'out.txt')

        remove_created(created)

        assert os.listdir(tmp_path) == []

    def test_remove_created_keeps_nonempty(self, tmp_path, caplog):
        created = create_parents(tmp_path / 'a' / 'b' / 'out.txt')
        (tmp_path / 'a' / 'b' / 'someone_elses.txt').write_text('x')

        with caplog.at_level(logging.WARNING, logger='localbak'):
            remove_created(created)

        assert (tmp_path / 'a' / 'b' / 'someone_elses.txt').exists()
        assert 'Failed to remove created directory' in caplog.text

    def test_partial_creation_is_undone(self, tmp_path):
        real_mkdir = Path.mkdir

        def mkdir_fails_on_b(self, *args, **kwargs):
            if self.name == 'b':
                raise PermissionError("denied")
            return real_mkdir(self, *args, **kwargs)

        with patch.object(Path, 'mkdir', mkdir_fails_on_b):
            with pytest.raises(PermissionError):
                create_parents(tmp_path / 'a' / 'b' / 'out.txt')

        assert os.listdir(tmp_path) == []
