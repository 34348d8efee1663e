"""Tests for the sync engine against a fake /codigos server."""

import asyncio

from conftest import remote_for

from scansync.store.models import SyncState
from scansync.sync.engine import PushOutcome, PushResult, SyncEngine, SyncReport


def run(coro):
    return asyncio.run(coro)


class TestPushOne:
    """Single-record pushes."""

    def test_push_marks_record_synced(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).push_one(record)

        result = run(scenario())

        assert result.outcome == PushOutcome.CREATED
        assert result.remote_id == "r-1"
        synced = store.get(record.id)
        assert synced.sync_state == SyncState.SYNCED
        assert synced.remote_id == "r-1"
        assert server.records["r-1"]["data"] == "9001"
        assert server.idempotency_keys == [record.id]

    def test_push_of_synced_record_makes_no_request(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                await engine.push_one(record)
                return await engine.push_one(record)

        second = run(scenario())

        assert second.outcome == PushOutcome.NOOP
        assert server.count("POST") == 1

    def test_network_failure_leaves_record_pending(self, store, server):
        record = store.insert("9001", "qr")
        server.down = True

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).push_one(record)

        result = run(scenario())

        assert result.outcome == PushOutcome.FAILED
        assert result.retryable
        failed = store.get(record.id)
        assert failed.sync_state == SyncState.PENDING
        assert failed.attempts == 1
        assert "Connection error" in failed.last_error

    def test_retry_after_transient_failure(self, store, server):
        record = store.insert("9001", "qr")
        server.fail_creates = 1

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                first = await engine.push_one(record)
                second = await engine.push_one(record)
                return first, second

        first, second = run(scenario())

        assert first.outcome == PushOutcome.FAILED
        assert second.outcome == PushOutcome.CREATED
        assert store.get(record.id).sync_state == SyncState.SYNCED
        assert len(server.records) == 1

    def test_rejection_is_flagged_and_skipped_until_resync(self, store, server):
        record = store.insert("BAD", "qr")
        server.reject_payloads.add("BAD")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                rejected = await engine.push_one(record)
                skipped_pass = await engine.full_sync()
                server.reject_payloads.clear()
                cleared = engine.resync(record.id)
                retried_pass = await engine.full_sync()
                return rejected, skipped_pass, cleared, retried_pass

        rejected, skipped_pass, cleared, retried_pass = run(scenario())

        assert rejected.outcome == PushOutcome.REJECTED
        assert not rejected.retryable
        assert "invalid code" in rejected.error
        assert skipped_pass.results == []
        assert server.count("POST") == 2
        assert cleared is True
        assert retried_pass.pushed == 1
        assert store.get(record.id).sync_state == SyncState.SYNCED

    def test_unknown_record_is_noop(self, store, server):
        record = store.insert("9001", "qr")
        store.purge(record.id)

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).push_one(record)

        assert run(scenario()).outcome == PushOutcome.NOOP
        assert server.requests == []


class TestDeletion:
    """Local and remote halves of a user deletion."""

    def test_pending_record_is_purged_without_network(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).push_deletion(record)

        result = run(scenario())

        assert result.outcome == PushOutcome.PURGED
        assert store.get(record.id) is None
        assert server.requests == []

    def test_synced_record_round_trip(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                await engine.push_one(record)
                return await engine.push_deletion(record)

        result = run(scenario())

        assert result.outcome == PushOutcome.DELETED
        assert result.remote_id == "r-1"
        assert store.get(record.id) is None
        assert server.records == {}

    def test_delete_while_offline_completes_on_next_sync(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                await engine.push_one(record)
                server.down = True
                offline = await engine.push_deletion(record)
                hidden = store.list_visible()
                server.down = False
                report = await engine.full_sync()
                return offline, hidden, report

        offline, hidden, report = run(scenario())

        assert offline.outcome == PushOutcome.FAILED
        assert hidden == []
        assert report.deleted == 1
        assert store.get(record.id) is None
        assert server.records == {}

    def test_begin_deletion_unknown_id(self, store, server):
        async def scenario():
            async with remote_for(server) as client:
                return SyncEngine(store, client).begin_deletion("missing")

        assert run(scenario()).outcome == PushOutcome.NOOP

    def test_remote_already_gone_still_purges(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                await engine.push_one(record)
                server.records.clear()
                return await engine.push_deletion(record)

        assert run(scenario()).outcome == PushOutcome.DELETED
        assert store.get(record.id) is None


class TestFullSync:
    """Whole-store sync passes."""

    def test_scan_to_synced(self, store, server):
        record = store.insert("9001", "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                report = await engine.full_sync()
                return engine, report

        engine, report = run(scenario())

        assert isinstance(report, SyncReport)
        assert report.remote_ok
        assert report.pushed == 1
        assert report.failures == 0
        assert store.get(record.id).remote_id == "r-1"
        # The view was fetched before the push
        assert engine.remote_view == []
        assert engine.remote_view_at is not None

    def test_network_down_reports_every_attempt(self, store, server):
        for payload in ("a", "b", "c"):
            store.insert(payload, "qr")

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                server.records["r-0"] = {"id": "r-0", "data": "seed", "type": "qr"}
                await engine.refresh_remote_view()
                server.down = True
                report = await engine.full_sync()
                return engine, report

        engine, report = run(scenario())

        assert report.remote_ok is False
        assert "Connection error" in report.remote_error
        assert report.failures == 3
        assert all(r.outcome == PushOutcome.FAILED for r in report.results)
        # Cached view kept after the failed refresh
        assert [r.id for r in engine.remote_view] == ["r-0"]
        assert engine.remote_view_error is not None
        assert len(store.list_by_state(SyncState.PENDING)) == 3

    def test_one_failure_does_not_block_others(self, store, server):
        store.insert("good-1", "qr")
        bad = store.insert("BAD", "qr")
        store.insert("good-2", "qr")
        server.reject_payloads.add("BAD")

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).full_sync()

        report = run(scenario())

        assert report.pushed == 2
        assert report.rejected == 1
        assert [e.record_id for e in report.errors] == [bad.id]
        assert store.get(bad.id).rejected is True

    def test_pushes_oldest_first(self, store, server):
        ids = [store.insert(f"code-{i}", "qr").id for i in range(4)]

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).full_sync()

        report = run(scenario())

        assert [r.record_id for r in report.results] == ids
        assert [rec["data"] for rec in server.records.values()] == [f"code-{i}" for i in range(4)]

    def test_identical_payloads_become_two_remote_records(self, store, server):
        store.insert("ABC123", "qr")
        store.insert("ABC123", "qr")

        async def scenario():
            async with remote_for(server) as client:
                return await SyncEngine(store, client).full_sync()

        report = run(scenario())

        assert report.pushed == 2
        assert len(server.records) == 2

    def test_lost_ack_is_reconciled_without_duplicate(self, store, server):
        record = store.insert("9001", "qr")
        server.lose_create_ack = True

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                first = await engine.push_one(record)
                report = await engine.full_sync()
                return first, report

        first, report = run(scenario())

        assert first.outcome == PushOutcome.FAILED
        assert report.reconciled == 1
        assert server.count("POST") == 1
        assert len(server.records) == 1
        synced = store.get(record.id)
        assert synced.sync_state == SyncState.SYNCED
        assert synced.remote_id == "r-1"

    def test_lost_ack_waits_for_listable_pass(self, store, server):
        record = store.insert("9001", "qr")
        fresh = store.insert("9002", "qr")
        server.lose_create_ack = True

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                await engine.push_one(record)
                server.list_down = True
                blind = await engine.full_sync()
                server.list_down = False
                recovered = await engine.full_sync()
                return blind, recovered

        blind, recovered = run(scenario())

        by_id = {r.record_id: r for r in blind.results}
        assert blind.remote_ok is False
        assert by_id[record.id].outcome == PushOutcome.FAILED
        assert by_id[record.id].retryable
        # Never attempted before, so it is still pushed
        assert by_id[fresh.id].outcome == PushOutcome.CREATED
        assert recovered.reconciled == 1
        assert server.count("POST") == 2
        assert sorted(r["data"] for r in server.records.values()) == ["9001", "9002"]
        assert store.get(record.id).remote_id == "r-1"

    def test_concurrent_push_and_full_sync_send_one_create(self, store, server):
        record = store.insert("9001", "qr")
        server.delay = 0.05

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                push = asyncio.create_task(engine.push_one(record))
                await asyncio.sleep(0)
                report = await engine.full_sync()
                return await push, report

        pushed, report = run(scenario())

        assert pushed.outcome == PushOutcome.CREATED
        assert server.count("POST") == 1
        assert len(server.records) == 1
        assert report.failures == 0

    def test_delete_during_inflight_create_removes_orphan(self, store, server):
        record = store.insert("9001", "qr")
        server.delay = 0.05

        async def scenario():
            async with remote_for(server) as client:
                engine = SyncEngine(store, client)
                push = asyncio.create_task(engine.push_one(record))
                await asyncio.sleep(0)
                step = engine.begin_deletion(record.id)
                return step, await push

        step, pushed = run(scenario())

        assert step.outcome == PushOutcome.PURGED
        assert pushed.outcome == PushOutcome.NOOP
        assert store.get(record.id) is None
        assert server.count("DELETE") == 1
        assert server.records == {}

    def test_report_to_dict(self):
        report = SyncReport(
            results=[
                PushResult("a", PushOutcome.CREATED, remote_id="r-1"),
                PushResult("b", PushOutcome.FAILED, error="Timeout"),
            ]
        )

        data = report.to_dict()

        assert data["pushed"] == 1
        assert data["failures"] == 1
        assert data["errors"] == [
            {"record_id": "b", "outcome": "failed", "remote_id": None, "error": "Timeout"}
        ]
