"""
API tests for the fieldwork sync endpoints.
"""
import json
from datetime import timedelta

from django.test import Client

from apps.fieldwork.models import SyncQueueEntry, SyncStatus
from apps.findings.tests.test_services import FindingTestBase
from apps.reviews.services import initialize_checklist


class FieldworkAPITest(FindingTestBase):
    def setUp(self):
        super().setUp()
        self.client = Client()
        self.item = next(i for i in initialize_checklist(self.review) if i.item_code == "PRE_DOCS_RECEIVED")

    def post(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type="application/json")

    def push(self, user=None, minutes=5, entity_type="checklistItem"):
        self.client.force_login(user or self.peer)
        return self.post("/api/fieldwork/queue", {
            "review_id": str(self.review.id),
            "operations": [{
                "entity_type": entity_type,
                "entity_id": str(self.item.id),
                "action": "UPDATE",
                "payload": {
                    "isCompleted": True,
                    "clientUpdatedAt": (self.item.updated_at + timedelta(minutes=minutes)).isoformat(),
                },
            }],
        })

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/fieldwork/status").status_code, 401)

    def test_push_is_processed(self):
        response = self.push()
        self.assertEqual(response.status_code, 202)
        self.assertEqual(len(response.json()["entry_ids"]), 1)

        # The local task backend processes the queue straight away
        self.item.refresh_from_db()
        self.assertTrue(self.item.is_completed)
        status = self.client.get("/api/fieldwork/status").json()
        self.assertEqual(status["pending"], 0)
        self.assertIsNotNone(status["last_sync_at"])

    def test_push_permissions(self):
        self.assertEqual(self.push(self.peer2).status_code, 404)
        self.assertEqual(self.push(self.host_admin).status_code, 403)
        self.assertEqual(self.push(entity_type="photo").status_code, 400)
        self.assertFalse(SyncQueueEntry.objects.exists())

    def test_conflict_resolution(self):
        self.push(minutes=-5)
        conflicts = self.client.get("/api/fieldwork/queue?status=conflict").json()
        self.assertEqual(len(conflicts), 1)
        entry_id = conflicts[0]["id"]

        response = self.post(f"/api/fieldwork/queue/{entry_id}/resolve", {"keep": "client"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["sync_status"], SyncStatus.PENDING)

        result = self.post("/api/fieldwork/sync").json()
        self.assertEqual(result["processed"], 1)
        self.item.refresh_from_db()
        self.assertTrue(self.item.is_completed)

        self.client.force_login(self.lead)
        response = self.post(f"/api/fieldwork/queue/{entry_id}/resolve", {"keep": "server"})
        self.assertEqual(response.status_code, 404)

    def test_keep_server_copy(self):
        self.push(minutes=-5)
        entry_id = self.client.get("/api/fieldwork/queue").json()[0]["id"]
        response = self.post(f"/api/fieldwork/queue/{entry_id}/resolve", {"keep": "server"})
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/fieldwork/queue").json(), [])

    def test_retry_and_clear(self):
        self.push(minutes=-5)
        SyncQueueEntry.objects.update(sync_status=SyncStatus.FAILED)
        self.assertEqual(self.post("/api/fieldwork/retry").json()["count"], 1)
        self.assertEqual(self.client.delete("/api/fieldwork/completed").json()["count"], 0)

    def test_offline_data(self):
        self.client.force_login(self.peer)
        response = self.client.get(f"/api/fieldwork/reviews/{self.review.id}/offline-data")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["review"]["reference_number"], "PR-2025-001")

        self.client.force_login(self.host_admin)
        response = self.client.get(f"/api/fieldwork/reviews/{self.review.id}/offline-data")
        self.assertEqual(response.status_code, 403)
