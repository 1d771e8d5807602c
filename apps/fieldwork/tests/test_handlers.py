"""
Built-in handlers (checklist ticks, draft findings) and the offline
bundle, run through the shared engine.
"""
from datetime import timedelta

from apps.findings.models import Finding, FindingType, FindingSeverity
from apps.findings.tests.test_services import FindingTestBase
from apps.fieldwork.models import SyncQueueEntry, SyncStatus, SyncAction, SyncEntityType
from apps.fieldwork.services import get_review_offline_data
from apps.fieldwork.sync_engine import sync_engine
from apps.reviews.constants import DEFAULT_CHECKLIST
from apps.reviews.services import initialize_checklist


class ChecklistSyncTest(FindingTestBase):
    def setUp(self):
        super().setUp()
        items = {item.item_code: item for item in initialize_checklist(self.review)}
        self.item = items["PRE_DOC_REQUEST_SENT"]
        self.closing = items["SITE_CLOSING_MEETING"]

    def push(self, item, client_updated_at, completed=True):
        return sync_engine.enqueue(
            self.peer, self.review, SyncEntityType.CHECKLIST_ITEM, item.id, SyncAction.UPDATE,
            {"isCompleted": completed, "notes": "Sent by e-mail", "clientUpdatedAt": client_updated_at.isoformat()},
        )

    def test_newer_device_edit_is_applied(self):
        self.push(self.item, self.item.updated_at + timedelta(minutes=5))
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).processed, 1)

        self.item.refresh_from_db()
        self.assertTrue(self.item.is_completed)
        self.assertEqual(self.item.completed_by, self.peer)
        self.assertEqual(self.item.notes, "Sent by e-mail")

    def test_stale_device_edit_conflicts(self):
        entry_id = self.push(self.item, self.item.updated_at - timedelta(minutes=5))
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).conflicts, 1)

        self.item.refresh_from_db()
        self.assertFalse(self.item.is_completed)
        entry = SyncQueueEntry.objects.get(id=entry_id)
        self.assertEqual(entry.sync_status, SyncStatus.CONFLICT)
        self.assertFalse(entry.server_data["isCompleted"])

    def test_business_rule_errors_are_retried(self):
        entry_id = self.push(self.closing, self.closing.updated_at + timedelta(minutes=5))
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).retried, 1)

        entry = SyncQueueEntry.objects.get(id=entry_id)
        self.assertIn("Complete these items first", entry.error)
        self.assertEqual(entry.retry_count, 1)

    def test_naive_client_time_is_utc(self):
        naive = (self.item.updated_at + timedelta(minutes=5)).replace(tzinfo=None)
        self.push(self.item, naive)
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).processed, 1)


class DraftFindingSyncTest(FindingTestBase):
    def push(self, client_id="draft-001", **payload):
        data = {
            "title": "Runway lighting log incomplete",
            "description": "Maintenance entries missing for two weeks.",
            "severity": FindingSeverity.MINOR,
            "areaCode": "AGA",
            "gpsLatitude": -1.31,
            "gpsLongitude": 36.92,
        }
        data.update(payload)
        return sync_engine.enqueue(
            self.peer, self.review, SyncEntityType.DRAFT_FINDING, client_id, SyncAction.CREATE, data,
        )

    def test_draft_becomes_finding(self):
        self.push()
        sync_engine.process_queue(user_id=self.peer.id)

        finding = Finding.objects.get(client_id="draft-001")
        self.assertEqual(finding.review, self.review)
        self.assertEqual(finding.finding_type, FindingType.OBSERVATION)
        self.assertEqual(finding.severity, FindingSeverity.MINOR)
        self.assertEqual(finding.audit_area, "AGA")
        self.assertEqual(finding.evidence_en, "GPS: -1.31, 36.92")
        self.assertEqual(finding.created_by, self.peer)

    def test_replayed_draft_is_not_duplicated(self):
        self.push()
        sync_engine.process_queue(user_id=self.peer.id)
        self.push()
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).processed, 1)
        self.assertEqual(Finding.objects.filter(client_id="draft-001").count(), 1)

    def test_invalid_draft_is_retried(self):
        self.push(severity="SEVERE")
        self.assertEqual(sync_engine.process_queue(user_id=self.peer.id).retried, 1)
        self.assertFalse(Finding.objects.exists())


class OfflineDataTest(FindingTestBase):
    def test_bundle(self):
        self.make_finding()
        data = get_review_offline_data(self.review, self.peer)

        self.assertEqual(data["review"]["reference_number"], "PR-2025-001")
        self.assertEqual(data["review"]["host_organization"]["organization_code"], "KCAA")
        self.assertEqual(len(data["checklist_items"]), len(DEFAULT_CHECKLIST))
        self.assertEqual(len(data["findings"]), 1)
        self.assertEqual({m["name"] for m in data["team_members"]}, {"lead", "peer"})

    def test_outsiders_are_refused(self):
        for user in (self.peer2, self.host_admin):
            with self.assertRaises(PermissionError):
                get_review_offline_data(self.review, user)
