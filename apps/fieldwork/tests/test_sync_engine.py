"""
Sync queue mechanics: ordering, retries with backoff, conflicts,
re-entrancy and queue maintenance.
"""
from datetime import timedelta

from django.utils import timezone

from apps.findings.tests.test_services import FindingTestBase
from apps.governance.audit_service import AuditAction
from apps.governance.models import AuditLog
from apps.notifications.models import Notification, NotificationType
from apps.fieldwork.models import SyncQueueEntry, SyncStatus, SyncAction
from apps.fieldwork.sync_engine import SyncEngine, SyncConflictError, SyncRetryableError, backoff_delay


class SyncEngineTestBase(FindingTestBase):
    def setUp(self):
        super().setUp()
        self.engine = SyncEngine()
        self.applied = []
        self.engine.register_handler("note", lambda entry: self.applied.append(entry.entity_id))

    def enqueue(self, entity_id="n-1", entity_type="note", user=None, **kwargs):
        return self.engine.enqueue(
            user or self.peer, self.review, entity_type, entity_id, SyncAction.UPDATE, {"text": entity_id}, **kwargs
        )

    def entry(self, entry_id):
        return SyncQueueEntry.objects.get(id=entry_id)

    def make_due(self, entry_id):
        SyncQueueEntry.objects.filter(id=entry_id).update(next_attempt_at=timezone.now() - timedelta(seconds=1))


class EnqueueTest(SyncEngineTestBase):
    def test_only_team_members_enqueue(self):
        entry_id = self.enqueue()
        self.assertEqual(self.entry(entry_id).sync_status, SyncStatus.PENDING)
        self.assertEqual(self.entry(entry_id).max_retries, 3)

        for outsider in (self.peer2, self.host_admin):
            with self.assertRaises(PermissionError):
                self.enqueue(user=outsider)

    def test_unknown_action(self):
        with self.assertRaisesMessage(ValueError, "Unknown sync action"):
            self.engine.enqueue(self.peer, self.review, "note", "n-1", "PATCH", {})


class ProcessQueueTest(SyncEngineTestBase):
    def test_success_removes_entry(self):
        self.enqueue()
        self.assertIsNone(self.engine.get_sync_status(self.peer).last_sync_at)

        result = self.engine.process_queue()

        self.assertEqual(result.processed, 1)
        self.assertEqual(self.applied, ["n-1"])
        self.assertFalse(SyncQueueEntry.objects.exists())
        status = self.engine.get_sync_status(self.peer)
        self.assertEqual(status.pending, 0)
        self.assertIsNotNone(status.last_sync_at)

    def test_entries_apply_in_recording_order(self):
        ids = [self.enqueue(name) for name in ("a", "b", "c")]
        now = timezone.now()
        for offset, entry_id in zip((2, 1, 3), ids):
            SyncQueueEntry.objects.filter(id=entry_id).update(created_at=now - timedelta(minutes=offset))

        self.engine.process_queue()
        self.assertEqual(self.applied, ["c", "a", "b"])

    def test_scoped_to_one_user(self):
        self.enqueue("mine")
        self.enqueue("theirs", user=self.lead)

        self.engine.process_queue(user_id=self.peer.id)
        self.assertEqual(self.applied, ["mine"])
        self.assertEqual(self.engine.get_sync_status(self.lead).pending, 1)

    def test_missing_handler_fails_immediately(self):
        entry_id = self.enqueue(entity_type="photo")
        result = self.engine.process_queue()

        entry = self.entry(entry_id)
        self.assertEqual(result.failed, 1)
        self.assertEqual(entry.sync_status, SyncStatus.FAILED)
        self.assertEqual(entry.retry_count, entry.max_retries)
        self.assertIn('No handler for entity type "photo"', entry.error)

    def test_errors_back_off_then_fail(self):
        def flaky(entry):
            raise SyncRetryableError("Gateway timeout")
        self.engine.register_handler("note", flaky)
        entry_id = self.enqueue()

        self.assertEqual(self.engine.process_queue().retried, 1)
        entry = self.entry(entry_id)
        self.assertEqual(entry.retry_count, 1)
        self.assertEqual(entry.sync_status, SyncStatus.PENDING)
        self.assertEqual(entry.next_attempt_at - entry.last_attempt, timedelta(seconds=5))
        self.assertEqual(entry.error, "Gateway timeout")

        # Not due yet
        result = self.engine.process_queue()
        self.assertEqual((result.retried, result.failed), (0, 0))

        self.make_due(entry_id)
        self.engine.process_queue()
        entry = self.entry(entry_id)
        self.assertEqual(entry.retry_count, 2)
        self.assertEqual(entry.next_attempt_at - entry.last_attempt, timedelta(seconds=15))

        self.make_due(entry_id)
        self.assertEqual(self.engine.process_queue().failed, 1)
        entry = self.entry(entry_id)
        self.assertEqual(entry.sync_status, SyncStatus.FAILED)
        self.assertTrue(entry.is_exhausted)

        # Exhausted entries are never picked up again
        self.make_due(entry_id)
        self.assertEqual(self.engine.process_queue().failed, 0)

    def test_backoff_schedule(self):
        self.assertEqual([backoff_delay(n).seconds for n in range(3)], [5, 15, 45])

    def test_handler_writes_roll_back_on_error(self):
        def half_done(entry):
            self.review.objectives = "changed"
            self.review.save()
            raise RuntimeError("boom")
        self.engine.register_handler("note", half_done)
        self.enqueue()

        self.engine.process_queue()
        self.review.refresh_from_db()
        self.assertEqual(self.review.objectives, "")

    def test_conflict_is_recorded_and_reported(self):
        def stale(entry):
            raise SyncConflictError("Server copy is newer", {"isCompleted": True})
        self.engine.register_handler("note", stale)
        entry_id = self.enqueue()

        result = self.engine.process_queue()

        entry = self.entry(entry_id)
        self.assertEqual(result.conflicts, 1)
        self.assertEqual(entry.sync_status, SyncStatus.CONFLICT)
        self.assertEqual(entry.server_data, {"isCompleted": True})
        self.assertTrue(entry.is_exhausted)
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.SYNC_CONFLICT, target_id=entry.id).exists())
        self.assertTrue(Notification.objects.filter(user=self.peer, type=NotificationType.SYNC_CONFLICT).exists())
        self.assertEqual(self.engine.get_sync_status(self.peer).conflicts, 1)

    def test_nested_run_is_skipped(self):
        nested = []
        self.engine.register_handler("note", lambda entry: nested.append(self.engine.process_queue()))
        self.enqueue()

        result = self.engine.process_queue()
        self.assertEqual(result.processed, 1)
        self.assertTrue(nested[0].skipped)
        self.assertFalse(result.skipped)


class QueueMaintenanceTest(SyncEngineTestBase):
    def setUp(self):
        super().setUp()
        self.failed_id = self.enqueue("failed")
        self.conflict_id = self.enqueue("conflict")
        SyncQueueEntry.objects.filter(id=self.failed_id).update(
            sync_status=SyncStatus.FAILED, retry_count=3, error="boom", last_attempt=timezone.now(),
        )
        SyncQueueEntry.objects.filter(id=self.conflict_id).update(
            sync_status=SyncStatus.CONFLICT, retry_count=3, last_attempt=timezone.now(), server_data={"v": 1},
        )

    def test_retry_failed_leaves_conflicts(self):
        self.assertEqual(self.engine.retry_failed(self.peer), 1)

        entry = self.entry(self.failed_id)
        self.assertEqual((entry.sync_status, entry.retry_count, entry.error), (SyncStatus.PENDING, 0, ""))
        self.assertEqual(self.entry(self.conflict_id).sync_status, SyncStatus.CONFLICT)

        self.engine.process_queue()
        self.assertEqual(self.applied, ["failed"])

    def test_clear_completed_after_a_day(self):
        self.assertEqual(self.engine.clear_completed(), 0)

        SyncQueueEntry.objects.filter(id=self.failed_id).update(last_attempt=timezone.now() - timedelta(hours=25))
        pending_id = self.enqueue("pending")

        self.assertEqual(self.engine.clear_completed(self.peer), 1)
        self.assertFalse(SyncQueueEntry.objects.filter(id=self.failed_id).exists())
        self.assertTrue(SyncQueueEntry.objects.filter(id__in=[self.conflict_id, pending_id]).count() == 2)

    def test_resolve_conflict(self):
        with self.assertRaisesMessage(ValueError, "Only conflicting entries"):
            self.engine.resolve_conflict(self.entry(self.failed_id), "client")
        with self.assertRaises(ValueError):
            self.engine.resolve_conflict(self.entry(self.conflict_id), "merge")

        entry = self.engine.resolve_conflict(self.entry(self.conflict_id), "client")
        self.assertEqual(entry.sync_status, SyncStatus.PENDING)
        self.assertIsNone(entry.server_data)
        self.assertIn("clientUpdatedAt", entry.payload)
        self.assertEqual(entry.payload["text"], "conflict")

        SyncQueueEntry.objects.filter(id=self.conflict_id).update(sync_status=SyncStatus.CONFLICT)
        self.assertIsNone(self.engine.resolve_conflict(self.entry(self.conflict_id), "server"))
        self.assertFalse(SyncQueueEntry.objects.filter(id=self.conflict_id).exists())
