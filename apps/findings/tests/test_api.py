"""
API tests for findings and CAPs: who records, who plans, who decides.
"""
import json
from unittest import mock

from django.test import Client

from apps.findings.models import CAPStatus, FindingStatus
from apps.identity.models import User, UserRole
from .test_services import FindingTestBase, finding_payload


class FindingAPITest(FindingTestBase):
    def setUp(self):
        super().setUp()
        self.client = Client()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def record_finding(self, user=None):
        self.client.force_login(user or self.peer)
        data = finding_payload(self.review).dict()
        data["review_id"] = str(self.review.id)
        return self.post("/api/findings/", data)

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/findings/").status_code, 401)

    def test_team_records_findings(self):
        response = self.record_finding()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], FindingStatus.CAP_REQUIRED)

        # Hosts lack the create permission; reviewers outside the team do not see the review
        self.assertEqual(self.record_finding(self.host_admin).status_code, 403)
        self.assertEqual(self.record_finding(self.peer2).status_code, 404)

    def test_host_sees_own_findings(self):
        finding_id = self.record_finding().json()["id"]
        self.client.force_login(self.host_admin)
        self.assertEqual(len(self.client.get("/api/findings/").json()), 1)
        detail = self.client.get(f"/api/findings/{finding_id}").json()
        self.assertIsNone(detail["cap"])
        self.assertEqual(detail["allowed_statuses"], [FindingStatus.CAP_SUBMITTED])

        self.client.force_login(self.peer2)
        self.assertEqual(self.client.get(f"/api/findings/{finding_id}").status_code, 404)

    def test_status_change_permissions(self):
        finding_id = self.record_finding().json()["id"]
        self.client.force_login(self.host_admin)
        response = self.post(f"/api/findings/{finding_id}/status", {"status": "DEFERRED"})
        self.assertEqual(response.status_code, 403)
        response = self.post(f"/api/findings/{finding_id}/status", {"status": "CLOSED"})
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.post(f"/api/findings/{finding_id}/status", {"status": "VERIFICATION"})
        self.assertEqual(response.status_code, 400)

    def test_cap_flow(self):
        finding_id = self.record_finding().json()["id"]
        cap_data = {
            "root_cause_en": "No approval step in document control.",
            "corrective_action_en": "Introduce an approval workflow.",
            "responsible_person": "Head of Safety",
        }

        # Reviewers cannot write the host's plan
        self.assertEqual(self.post(f"/api/findings/{finding_id}/cap", cap_data).status_code, 403)

        self.client.force_login(self.safety_manager)
        response = self.post(f"/api/findings/{finding_id}/cap", cap_data)
        self.assertEqual(response.status_code, 201)
        cap_id = response.json()["id"]
        self.assertEqual(self.post(f"/api/findings/{finding_id}/cap", cap_data).status_code, 400)

        response = self.post(f"/api/findings/caps/{cap_id}/transition", {"status": "SUBMITTED"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["cap"]["status"], CAPStatus.SUBMITTED)
        self.assertEqual(response.json()["allowed_statuses"], [])

        response = self.post(f"/api/findings/caps/{cap_id}/transition", {"status": "UNDER_REVIEW"})
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.lead)
        detail = self.client.get(f"/api/findings/caps/{cap_id}").json()
        self.assertEqual(detail["allowed_statuses"], [CAPStatus.UNDER_REVIEW, CAPStatus.DRAFT])
        self.assertEqual(detail["deadline_info"]["urgency_level"], "normal")

        response = self.post(f"/api/findings/caps/{cap_id}/transition", {"status": "UNDER_REVIEW"})
        self.assertEqual(response.status_code, 200)
        response = self.post(f"/api/findings/caps/{cap_id}/transition", {"status": "REJECTED"})
        self.assertEqual(response.status_code, 400)

    def test_milestones(self):
        cap = self.make_cap()
        self.client.force_login(self.safety_manager)
        response = self.post(f"/api/findings/caps/{cap.id}/milestones", {
            "title_en": "Draft procedure", "target_date": "2030-01-15",
        })
        self.assertEqual(response.status_code, 201)
        milestone_id = response.json()["id"]

        response = self.client.patch(
            f"/api/findings/caps/{cap.id}/milestones/{milestone_id}",
            data=json.dumps({"status": "COMPLETED"}), content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.json()["completed_at"])

    def test_deadlines_and_statistics_are_scoped(self):
        self.make_cap()
        self.client.force_login(self.host_admin)
        self.assertEqual(len(self.client.get("/api/findings/caps/deadlines").json()), 1)
        self.assertEqual(self.client.get("/api/findings/caps/statistics").json()["total"], 1)

        other_admin = User.objects.create_user(username="gh_admin", role=UserRole.ANSP_ADMIN, org_id=self.other.id)
        self.client.force_login(other_admin)
        self.assertEqual(self.client.get("/api/findings/caps/deadlines").json(), [])

    @mock.patch("apps.findings.api.TaskService.process_cap_escalations", return_value="task-1")
    def test_escalation_trigger_is_admin_only(self, queued):
        self.client.force_login(self.host_admin)
        self.assertEqual(self.post("/api/findings/caps/escalations", {}).status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.post("/api/findings/caps/escalations", {})
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"task_id": "task-1"})
        queued.assert_called_once_with(org_id=None)
