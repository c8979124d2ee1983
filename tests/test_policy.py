"""Tests for replication policy rules."""

import pytest

from homestead_sync.core.sync import (
    RemoteDecision,
    RetryPolicy,
    classify_remote,
    is_own_write,
    record_updated_at,
    should_apply_remote,
)


class TestShouldApplyRemote:
    """Test the last-writer-wins rule."""

    def test_applies_when_no_local_copy(self):
        """A record we have never seen is always applied."""
        assert should_apply_remote(None, {"id": "a", "updatedAt": 1})

    def test_applies_strictly_newer_remote(self):
        """A newer remote version wins."""
        assert should_apply_remote({"updatedAt": 10}, {"updatedAt": 11})

    def test_keeps_local_on_tie(self):
        """Equal timestamps keep the local copy."""
        assert not should_apply_remote({"updatedAt": 10}, {"updatedAt": 10})

    def test_keeps_newer_local(self):
        """An older remote version is ignored."""
        assert not should_apply_remote({"updatedAt": 20}, {"updatedAt": 10})

    def test_missing_remote_is_never_applied(self):
        """Nothing to apply without a remote version."""
        assert not should_apply_remote({"updatedAt": 1}, None)

    def test_record_updated_at_defaults_to_zero(self):
        """Records without updatedAt sort first."""
        assert record_updated_at(None) == 0
        assert record_updated_at({"id": "x"}) == 0


class TestClassifyRemote:
    """Test classification of pulled rows."""

    def test_pending_change_with_unseen_remote_is_conflict(self):
        """Both sides moved since the last sync."""
        decision = classify_remote(
            {"updatedAt": 90},
            {"updatedAt": 100},
            has_pending_change=True,
            last_synced_at=50,
        )
        assert decision == RemoteDecision.CONFLICT

    def test_pending_change_never_synced_is_conflict(self):
        """A remote copy appearing under a local-only change conflicts."""
        decision = classify_remote(
            {"updatedAt": 90}, {"updatedAt": 100}, has_pending_change=True
        )
        assert decision == RemoteDecision.CONFLICT

    def test_pending_change_with_known_remote_is_skipped(self):
        """The remote is still what we last saw; the push will supersede it."""
        decision = classify_remote(
            {"updatedAt": 90},
            {"updatedAt": 50},
            has_pending_change=True,
            last_synced_at=50,
        )
        assert decision == RemoteDecision.SKIP

    def test_pending_change_conflicts_even_with_older_remote(self):
        """Timestamps do not decide conflicts, last-synced versions do."""
        decision = classify_remote(
            {"updatedAt": 200},
            {"updatedAt": 100},
            has_pending_change=True,
            last_synced_at=50,
        )
        assert decision == RemoteDecision.CONFLICT

    def test_tombstone_without_local_is_skipped(self):
        """Nothing to delete locally."""
        decision = classify_remote(None, {"updatedAt": 5}, remote_deleted=True)
        assert decision == RemoteDecision.SKIP

    @pytest.mark.parametrize(
        "local,remote,expected",
        [
            (None, {"updatedAt": 5}, RemoteDecision.APPLY),
            ({"updatedAt": 4}, {"updatedAt": 5}, RemoteDecision.APPLY),
            ({"updatedAt": 5}, {"updatedAt": 5}, RemoteDecision.SKIP),
            ({"updatedAt": 6}, {"updatedAt": 5}, RemoteDecision.SKIP),
        ],
    )
    def test_without_pending_change_follows_lww(self, local, remote, expected):
        """Clean records follow last-writer-wins."""
        assert classify_remote(local, remote) == expected


class TestIsOwnWrite:
    """Test recognising this device's write coming back from the remote."""

    LOCAL = {"id": "t1", "title": "x", "updatedAt": 10, "syncStatus": "pending"}

    def test_matching_row_is_own_write(self):
        """Same version and fields, whatever the sync status says."""
        remote = dict(self.LOCAL, syncStatus="synced")
        assert is_own_write(self.LOCAL, remote)

    def test_different_fields_are_not(self):
        """Another device wrote the same version with other content."""
        remote = dict(self.LOCAL, title="y")
        assert not is_own_write(self.LOCAL, remote)

    def test_different_version_is_not(self):
        """A newer remote version is someone else's write."""
        remote = dict(self.LOCAL, updatedAt=11)
        assert not is_own_write(self.LOCAL, remote)

    def test_tombstone_matches_pending_delete(self):
        """A remote delete acknowledges a local delete only."""
        tombstone = {"id": "t1", "updatedAt": 10}
        assert is_own_write(None, tombstone, remote_deleted=True, pending_delete=True)
        assert not is_own_write(None, tombstone, remote_deleted=True)
        assert not is_own_write(
            self.LOCAL, tombstone, remote_deleted=True, pending_delete=True
        )


class TestRetryPolicy:
    """Test bounded exponential backoff."""

    def test_delays_double_from_base(self):
        """Delays grow 2, 4, 8, 16 seconds."""
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [2, 4, 8, 16]

    def test_delay_is_capped(self):
        """Delays never exceed the cap."""
        policy = RetryPolicy(base_delay=2, max_delay=300)
        assert policy.delay_for(20) == 300

    def test_exhausted_after_max_attempts(self):
        """Five attempts by default."""
        policy = RetryPolicy()
        assert not policy.exhausted(4)
        assert policy.exhausted(5)
