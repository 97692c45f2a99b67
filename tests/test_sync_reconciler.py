"""Tests for the Reconciler."""

import os
from unittest.mock import patch

import pytest

from pysyncd.messages import EntityType, Entry
from pysyncd.sync.paths import PathGuard
from pysyncd.sync.reconciler import ReconcileAction, Reconciler
from pysyncd.utils import hash_bytes


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def reconciler(root):
    return Reconciler(PathGuard(root))


def _actions(decisions):
    return [(d.action, d.relative_path) for d in decisions]


class TestFileEntries:
    """Tests for remote File entries."""

    def test_missing_local_file_fetched(self, reconciler):
        """A remote file without local copy is requested exactly once."""
        entries = [Entry("a.txt", EntityType.FILE, hash_bytes(b"remote"))]

        decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [(ReconcileAction.FETCH, "a.txt")]
        assert decisions[0].reason == "New remote file"

    def test_identical_file_skipped(self, root, reconciler):
        """A local file with the same fingerprint needs no request."""
        (root / "a.txt").write_bytes(b"same")
        entries = [Entry("a.txt", EntityType.FILE, hash_bytes(b"same"))]

        decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [(ReconcileAction.SKIP, "a.txt")]

    def test_different_contents_fetched(self, root, reconciler):
        (root / "a.txt").write_bytes(b"local")
        entries = [Entry("a.txt", EntityType.FILE, hash_bytes(b"remote"))]

        decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [(ReconcileAction.FETCH, "a.txt")]
        assert decisions[0].reason == "Contents differ"

    def test_missing_hash_fetched(self, root, reconciler):
        (root / "a.txt").write_bytes(b"local")

        decisions = reconciler.reconcile([Entry("a.txt", EntityType.FILE)])

        assert decisions[0].action == ReconcileAction.FETCH

    def test_local_directory_replaced_by_file(self, root, reconciler):
        (root / "thing").mkdir()

        decisions = reconciler.reconcile([Entry("thing", EntityType.FILE, 1)])

        assert decisions[0].action == ReconcileAction.FETCH
        assert decisions[0].reason == "Remote file replaces local directory"

    def test_rerun_after_converging_yields_no_fetch(self, root, reconciler):
        entries = [Entry("a.txt", EntityType.FILE, hash_bytes(b"data"))]
        assert reconciler.reconcile(entries)[0].action == ReconcileAction.FETCH

        (root / "a.txt").write_bytes(b"data")

        assert reconciler.reconcile(entries)[0].action == ReconcileAction.SKIP


class TestDirectoryEntries:
    """Tests for remote Directory entries."""

    def test_existing_directory_listed(self, root, reconciler):
        (root / "docs").mkdir()

        decisions = reconciler.reconcile([Entry("docs", EntityType.DIRECTORY)])

        assert _actions(decisions) == [(ReconcileAction.LIST, "docs")]

    def test_new_directory_created_and_listed(self, root, reconciler):
        decisions = reconciler.reconcile([Entry("docs", EntityType.DIRECTORY)])

        assert _actions(decisions) == [
            (ReconcileAction.CREATE_DIRECTORY, "docs"),
            (ReconcileAction.LIST, "docs"),
        ]
        assert decisions[0].local_path == root / "docs"

    def test_local_file_replaced_by_directory(self, root, reconciler):
        (root / "docs").write_text("file")

        decisions = reconciler.reconcile([Entry("docs", EntityType.DIRECTORY)])

        assert decisions[0].action == ReconcileAction.CREATE_DIRECTORY
        assert decisions[0].reason == "Remote directory replaces local file"


class TestOtherEntries:
    """Tests for symlinks, escapes and mixed listings."""

    def test_symlink_skipped(self, reconciler):
        decisions = reconciler.reconcile([Entry("link", EntityType.SYMLINK)])

        assert _actions(decisions) == [(ReconcileAction.SKIP, "link")]

    def test_escaping_entry_rejected(self, reconciler):
        decisions = reconciler.reconcile(
            [Entry("../outside.txt", EntityType.FILE, 1)]
        )

        assert _actions(decisions) == [(ReconcileAction.REJECT, "../outside.txt")]
        assert decisions[0].local_path is None

    def test_root_entry_rejected(self, reconciler):
        decisions = reconciler.reconcile([Entry(".", EntityType.DIRECTORY)])

        assert decisions[0].action == ReconcileAction.REJECT

    def test_symlinked_parent_escape_rejected(self, tmp_path, root, reconciler):
        outside = tmp_path / "outside"
        outside.mkdir()
        os.symlink(outside, root / "link")

        decisions = reconciler.reconcile([Entry("link/f.txt", EntityType.FILE, 1)])

        assert decisions[0].action == ReconcileAction.REJECT

    def test_rejection_does_not_stop_other_entries(self, reconciler):
        entries = [
            Entry("../evil", EntityType.FILE, 1),
            Entry("good.txt", EntityType.FILE, 2),
        ]

        decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [
            (ReconcileAction.REJECT, "../evil"),
            (ReconcileAction.FETCH, "good.txt"),
        ]

    def test_order_independent(self, root, reconciler):
        (root / "same.txt").write_bytes(b"s")
        entries = [
            Entry("new.txt", EntityType.FILE, 1),
            Entry("same.txt", EntityType.FILE, hash_bytes(b"s")),
            Entry("dir", EntityType.DIRECTORY),
        ]

        forward = set(_actions(reconciler.reconcile(entries)))
        backward = set(_actions(reconciler.reconcile(list(reversed(entries)))))

        assert forward == backward

    def test_empty_listing(self, reconciler):
        assert reconciler.reconcile([]) == []


class TestUnreadableEntries:
    """Tests for entries that cannot be inspected locally."""

    def test_name_too_long_does_not_stop_siblings(self, reconciler):
        entries = [
            Entry("x" * 300, EntityType.FILE, 1),
            Entry("good.txt", EntityType.FILE, 2),
        ]

        decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [
            (ReconcileAction.REJECT, "x" * 300),
            (ReconcileAction.FETCH, "good.txt"),
        ]

    def test_unreadable_local_file_rejected(self, root, reconciler):
        (root / "locked.txt").write_bytes(b"x")
        (root / "other.txt").write_bytes(b"y")
        entries = [
            Entry("locked.txt", EntityType.FILE, 1),
            Entry("other.txt", EntityType.FILE, 2),
        ]

        def hash_file(path):
            if path.name == "locked.txt":
                raise PermissionError(13, "Permission denied", str(path))
            return hash_bytes(path.read_bytes())

        with patch("pysyncd.sync.reconciler.hash_file", side_effect=hash_file):
            decisions = reconciler.reconcile(entries)

        assert _actions(decisions) == [
            (ReconcileAction.REJECT, "locked.txt"),
            (ReconcileAction.FETCH, "other.txt"),
        ]
        assert "Permission denied" in decisions[0].reason

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires os.mkfifo")
    def test_fifo_skipped_without_opening(self, root, reconciler):
        os.mkfifo(root / "pipe")

        with patch("pysyncd.sync.reconciler.hash_file") as hash_file:
            decisions = reconciler.reconcile([Entry("pipe", EntityType.FILE, 2)])

        assert _actions(decisions) == [(ReconcileAction.SKIP, "pipe")]
        assert decisions[0].reason == "Local path is not a regular file"
        hash_file.assert_not_called()
