"""Tests for the push/pull sync cycle."""

import asyncio

from homestead_sync.core.sync import InMemoryRemoteReplica, SyncResult
from homestead_sync.exceptions import TransientNetworkError
from homestead_sync.models import QueueStatus, SyncStatus


class SlowRemote(InMemoryRemoteReplica):
    """Remote whose calls take ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def push(self, *args, **kwargs):
        await asyncio.sleep(self.delay)
        await super().push(*args, **kwargs)

    async def pull(self, since):
        await asyncio.sleep(self.delay)
        return await super().pull(since)


class LostReplyRemote(InMemoryRemoteReplica):
    """Remote that stores the first push but drops its reply."""

    def __init__(self, offline_after_loss: bool = False) -> None:
        super().__init__()
        self.replies_to_drop = 1
        self.offline_after_loss = offline_after_loss

    async def push(self, *args, **kwargs):
        await super().push(*args, **kwargs)
        if self.replies_to_drop:
            self.replies_to_drop -= 1
            if self.offline_after_loss:
                self.online = False
            raise TransientNetworkError("Connection reset by peer")


class TestSyncResult:
    """Test the cycle summary."""

    def test_busy_result_is_not_success(self):
        """A busy cycle did nothing."""
        result = SyncResult.busy_result("force")
        assert result.busy
        assert not result.success
        assert result.trigger == "force"

    def test_errors_mark_failure(self):
        """Any error makes the cycle unsuccessful."""
        result = SyncResult(trigger="manual")
        assert result.success
        result.add_error("boom")
        assert not result.success
        assert result.get_summary()["errors"] == 1


class TestPush:
    """Test uploading queued changes."""

    def test_push_uploads_and_marks_synced(self, device, remote, clock):
        """A pushed record is on the remote and flagged synced locally."""

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1", "title": "Water beds"})
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.success
        assert result.pushed == 1
        row = remote.get_row("tasks", "t1")
        assert row.data["title"] == "Water beds"
        assert row.updated_at == clock.now
        assert device.store.get("tasks", "t1")["syncStatus"] == SyncStatus.SYNCED.value
        assert device.interceptor.stats()["done"] == 1
        assert device.metadata.get_last_synced("tasks", "t1") == clock.now

    def test_many_edits_upload_once(self, device, remote, clock):
        """Edits made while offline collapse into a single upload."""

        async def scenario():
            for n in range(10):
                clock.advance(1)
                await device.interceptor.put_record("tasks", {"id": "t1", "count": n})
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.pushed == 1
        assert remote.push_count == 1
        assert remote.get_row("tasks", "t1").data["count"] == 9

    def test_local_delete_pushes_tombstone(self, device, remote):
        """Deleting a synced record deletes it remotely."""

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            await device.engine.run_sync_cycle()
            await device.interceptor.delete_record("tasks", "t1")
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.pushed == 1
        row = remote.get_row("tasks", "t1")
        assert row.deleted
        assert row.data is None

    def test_permanent_rejection_fails_item(self, device, remote):
        """A validation error is not retried."""
        remote.reject[("tasks", "t1")] = "title is required"

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.failed == 1
        items = device.interceptor.list_items(QueueStatus.FAILED)
        assert len(items) == 1
        assert items[0].error == "title is required"
        assert items[0].attempts == 0
        assert device.store.get("tasks", "t1")["syncStatus"] == SyncStatus.PENDING.value

    def test_transient_failures_back_off_then_give_up(self, device, remote, clock):
        """Network failures retry with growing delays, then fail for good."""
        remote.online = False
        delays = []

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            results = []
            for _ in range(5):
                results.append(await device.engine.run_sync_cycle())
                item = device.interceptor.list_items()[0]
                if item.status == QueueStatus.PENDING:
                    delays.append(item.next_attempt_at - clock.now)
                    clock.advance(item.next_attempt_at - clock.now)
            return results

        results = asyncio.run(scenario())

        assert [r.retried for r in results] == [1, 1, 1, 1, 0]
        assert results[-1].failed == 1
        assert delays == [2000, 4000, 8000, 16000]
        item = device.interceptor.list_items()[0]
        assert item.status == QueueStatus.FAILED
        assert item.attempts == 5
        assert "gave up after 5 attempts" in item.error
        assert not results[0].success

    def test_item_waits_for_backoff(self, device, remote, clock):
        """A retrying item is left alone until it is due."""
        remote.online = False

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            await device.engine.run_sync_cycle()
            remote.online = True
            early = await device.engine.run_sync_cycle()
            clock.advance(2000)
            late = await device.engine.run_sync_cycle()
            return early, late

        early, late = asyncio.run(scenario())

        assert early.pushed == 0
        assert late.pushed == 1

    def test_push_timeout_counts_as_transient(self, make_device, clock):
        """A hung remote call is abandoned and retried later."""
        slow = SlowRemote(delay=1.0)
        device = make_device()
        device.engine.remote = slow
        device.engine.network_timeout = 0.01

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.retried == 1
        item = device.interceptor.list_items()[0]
        assert item.status == QueueStatus.PENDING
        assert "timed out" in item.error
        assert any("timed out" in error for error in result.errors)

    def test_lost_push_reply_is_settled_by_pull(self, make_device, clock):
        """A push that landed but went unacknowledged is not a conflict."""
        lossy = LostReplyRemote()
        device = make_device()
        device.engine.remote = lossy

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1", "title": "Water beds"})
            first = await device.engine.run_sync_cycle()
            clock.advance(2000)
            second = await device.engine.run_sync_cycle()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.retried == 1
        assert first.conflicts == 0
        assert second.conflicts == 0
        assert second.pushed == 0
        assert lossy.push_count == 1
        assert device.resolver.list_unresolved() == []
        assert device.interceptor.outstanding_items("tasks", "t1") == []
        assert device.store.get("tasks", "t1")["syncStatus"] == SyncStatus.SYNCED.value
        assert device.metadata.get_last_synced("tasks", "t1") == 1_000_000

    def test_lost_push_reply_is_settled_by_retry(self, make_device, clock):
        """When the pull also failed, the retried push is accepted as a replay."""
        lossy = LostReplyRemote(offline_after_loss=True)
        device = make_device()
        device.engine.remote = lossy

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1", "title": "Water beds"})
            first = await device.engine.run_sync_cycle()
            lossy.online = True
            clock.advance(2000)
            second = await device.engine.run_sync_cycle()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.retried == 1
        assert not first.success
        assert second.pushed == 1
        assert second.conflicts == 0
        assert lossy.push_count == 1
        assert device.resolver.list_unresolved() == []
        assert device.interceptor.stats()["pending"] == 0


class TestPull:
    """Test applying remote changes."""

    def test_pull_applies_new_records(self, device, remote):
        """Remote rows land locally as synced."""
        remote.simulate_remote_update("tasks", "t1", {"title": "Prune"}, updated_at=500)

        result = asyncio.run(device.engine.run_sync_cycle())

        assert result.pulled == 1
        local = device.store.get("tasks", "t1")
        assert local["title"] == "Prune"
        assert local["updatedAt"] == 500
        assert local["syncStatus"] == SyncStatus.SYNCED.value
        assert device.metadata.get_cursor() == 500

    def test_pull_is_idempotent(self, device, remote):
        """Pulling the same rows again changes nothing."""
        remote.simulate_remote_update("tasks", "t1", {"title": "Prune"}, updated_at=500)

        async def scenario():
            await device.engine.run_sync_cycle()
            before = device.store.get("tasks", "t1")
            device.metadata.reset_cursor()
            again = await device.engine.run_sync_cycle()
            return before, again

        before, again = asyncio.run(scenario())

        assert again.pulled == 0
        assert again.skipped == 1
        assert device.store.get("tasks", "t1") == before

    def test_older_remote_version_is_ignored(self, device, remote):
        """A stale remote row never overwrites a newer local copy."""
        device.store.put(
            "tasks",
            {"id": "t1", "title": "new", "updatedAt": 900, "syncStatus": "synced"},
        )
        remote.simulate_remote_update("tasks", "t1", {"title": "old"}, updated_at=400)

        result = asyncio.run(device.engine.run_sync_cycle())

        assert result.pulled == 0
        assert device.store.get("tasks", "t1")["title"] == "new"

    def test_remote_tombstone_deletes_locally(self, device, remote):
        """A remote delete removes the synced local copy."""
        remote.simulate_remote_update("tasks", "t1", {"title": "x"}, updated_at=500)

        async def scenario():
            await device.engine.run_sync_cycle()
            remote.simulate_remote_update("tasks", "t1", updated_at=600, deleted=True)
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.pulled == 1
        assert device.store.get("tasks", "t1") is None

    def test_tombstone_for_unknown_record_is_skipped(self, device, remote):
        """Deleting something never seen is a no-op."""
        remote.simulate_remote_update("tasks", "ghost", updated_at=500, deleted=True)

        result = asyncio.run(device.engine.run_sync_cycle())

        assert result.pulled == 0
        assert result.skipped == 1
        assert device.metadata.get_cursor() == 500

    def test_own_push_is_not_reapplied(self, device, remote):
        """The echo of a pushed change is skipped."""

        async def scenario():
            await device.interceptor.put_record("tasks", {"id": "t1"})
            return await device.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.pushed == 1
        assert result.pulled == 0
        assert remote.push_count == 1

    def test_offline_pull_reports_error(self, device, remote):
        """Losing the network ends the cycle with an error, not an exception."""
        remote.online = False

        result = asyncio.run(device.engine.run_sync_cycle())

        assert not result.success
        assert any("Pull failed" in error for error in result.errors)
        assert device.metadata.get_cursor() == 0


class TestTwoDevices:
    """Test concurrent edits from two devices."""

    def _diverge(self, make_device, clock):
        a = make_device()
        b = make_device()

        async def scenario():
            await a.interceptor.put_record("tasks", {"id": "t1", "title": "base"})
            await a.engine.run_sync_cycle()
            await b.engine.run_sync_cycle()

            clock.advance(10)
            await b.interceptor.put_record("tasks", {"id": "t1", "title": "from b"})
            clock.advance(10)
            await a.interceptor.put_record("tasks", {"id": "t1", "title": "from a"})
            await a.engine.run_sync_cycle()
            return await b.engine.run_sync_cycle()

        return a, b, asyncio.run(scenario())

    def test_concurrent_edit_is_a_conflict(self, make_device, remote, clock):
        """The second device does not overwrite the first one's change."""
        a, b, result = self._diverge(make_device, clock)

        assert result.conflicts == 1
        assert result.pushed == 0
        assert remote.get_row("tasks", "t1").data["title"] == "from a"
        assert b.store.get("tasks", "t1")["title"] == "from b"

        conflicts = b.resolver.list_unresolved()
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.local_version["title"] == "from b"
        assert conflict.remote_version["title"] == "from a"
        assert conflict.differing_fields() == ["title", "updatedAt"]

    def test_conflicted_record_is_held(self, make_device, remote, clock):
        """Later cycles leave the record alone until it is resolved."""
        a, b, _ = self._diverge(make_device, clock)

        async def scenario():
            clock.advance(10)
            await a.interceptor.put_record("tasks", {"id": "t1", "title": "again a"})
            await a.engine.run_sync_cycle()
            return await b.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.conflicts == 0
        assert result.pushed == 0
        assert b.store.get("tasks", "t1")["title"] == "from b"
        conflicts = b.resolver.list_unresolved()
        assert len(conflicts) == 1
        assert conflicts[0].remote_version["title"] == "again a"

    def test_pending_change_pushes_when_remote_unchanged(self, make_device, remote, clock):
        """A local edit over the last synced version is not a conflict."""
        a = make_device()
        b = make_device()

        async def scenario():
            await a.interceptor.put_record("tasks", {"id": "t1", "title": "base"})
            await a.engine.run_sync_cycle()
            await b.engine.run_sync_cycle()
            clock.advance(10)
            await b.interceptor.put_record("tasks", {"id": "t1", "title": "from b"})
            return await b.engine.run_sync_cycle()

        result = asyncio.run(scenario())

        assert result.conflicts == 0
        assert result.pushed == 1
        assert remote.get_row("tasks", "t1").data["title"] == "from b"

    def test_later_push_settles_rejected_change(self, make_device, remote, clock):
        """A rejected item does not turn later remote edits into conflicts."""
        a = make_device()
        b = make_device()
        remote.reject[("tasks", "t1")] = "title is required"

        async def scenario():
            await a.interceptor.put_record("tasks", {"id": "t1"})
            rejected = await a.engine.run_sync_cycle()
            remote.reject.clear()
            clock.advance(10)
            await a.interceptor.put_record("tasks", {"id": "t1", "title": "Water beds"})
            accepted = await a.engine.run_sync_cycle()

            await b.engine.run_sync_cycle()
            clock.advance(10)
            await b.interceptor.put_record("tasks", {"id": "t1", "title": "Weed beds"})
            await b.engine.run_sync_cycle()
            return rejected, accepted, await a.engine.run_sync_cycle()

        rejected, accepted, result = asyncio.run(scenario())

        assert rejected.failed == 1
        assert accepted.pushed == 1
        assert a.interceptor.stats()["failed"] == 0
        assert result.conflicts == 0
        assert result.pulled == 1
        assert a.resolver.list_unresolved() == []
        assert a.store.get("tasks", "t1")["title"] == "Weed beds"


class TestSingleFlight:
    """Test that cycles never overlap."""

    def test_second_cycle_is_busy(self, make_device):
        """A cycle started while one runs returns a busy result."""
        device = make_device()
        device.engine.remote = SlowRemote(delay=0.05)

        async def scenario():
            return await asyncio.gather(
                device.engine.run_sync_cycle("timer"),
                device.engine.run_sync_cycle("force"),
            )

        first, second = asyncio.run(scenario())

        assert not first.busy
        assert second.busy
        assert second.trigger == "force"

    def test_wait_queues_behind_running_cycle(self, make_device):
        """With wait=True the second cycle runs after the first."""
        device = make_device()
        device.engine.remote = SlowRemote(delay=0.05)

        async def scenario():
            return await asyncio.gather(
                device.engine.run_sync_cycle(),
                device.engine.run_sync_cycle(wait=True),
            )

        first, second = asyncio.run(scenario())

        assert not first.busy
        assert not second.busy
        assert not device.engine.is_running
