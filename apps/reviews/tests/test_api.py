"""
API tests for peer reviews: request, approval, team invitations,
transitions and the fieldwork checklist over HTTP.
"""
import json
from datetime import date

from django.test import Client

from apps.reviews.models import Review, ReviewStatus, TeamRole, InvitationStatus
from .test_services import ReviewTestBase


class ReviewAPITest(ReviewTestBase):
    def setUp(self):
        super().setUp()
        self.client = Client()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def patch(self, url, data):
        return self.client.patch(url, data=json.dumps(data), content_type="application/json")

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/reviews/").status_code, 401)

    def test_request_and_approve(self):
        self.client.force_login(self.host_admin)
        response = self.post("/api/reviews/", {"review_type": "FULL", "objectives": "ANS and SMS"})
        self.assertEqual(response.status_code, 201)
        review_id = response.json()["id"]
        self.assertEqual(self.post("/api/reviews/", {}).status_code, 400)

        # Hosts cannot approve their own request
        response = self.post(f"/api/reviews/{review_id}/transition", {"status": "APPROVED"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("cannot perform this transition", response.json()["detail"])

        self.client.force_login(self.coordinator)
        response = self.post(f"/api/reviews/{review_id}/transition", {"status": "APPROVED"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["previous_status"], ReviewStatus.REQUESTED)
        self.assertEqual(response.json()["review"]["status"], ReviewStatus.APPROVED)

    def test_staff_cannot_request(self):
        self.client.force_login(self.host_staff)
        self.assertEqual(self.post("/api/reviews/", {}).status_code, 403)

    def test_team_invitation_flow(self):
        review = self.make_review()
        self.client.force_login(self.coordinator)
        response = self.post(f"/api/reviews/{review.id}/team", {
            "user_id": str(self.lead.id), "role": TeamRole.LEAD_REVIEWER,
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.post(f"/api/reviews/{review.id}/team", {
            "user_id": str(self.host_admin.id),
        }).status_code, 400)

        # Hosts cannot plan the team
        self.client.force_login(self.host_admin)
        self.assertEqual(self.post(f"/api/reviews/{review.id}/team", {
            "user_id": str(self.peer.id),
        }).status_code, 403)

        self.client.force_login(self.lead)
        response = self.post(f"/api/reviews/{review.id}/team/respond", {"accept": True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["invitation_status"], InvitationStatus.CONFIRMED)

        detail = self.client.get(f"/api/reviews/{review.id}").json()
        self.assertEqual(detail["review"]["status"], ReviewStatus.PLANNING)
        self.assertEqual(len(detail["team"]), 1)
        self.assertEqual(detail["progress_percentage"], 20)

    def test_remove_team_member(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        member = self.add_member(review, self.peer)
        self.client.force_login(self.coordinator)
        response = self.client.delete(f"/api/reviews/{review.id}/team/{member.id}")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(review.team_members.exists())

    def test_tenant_isolation(self):
        review = Review.objects.create(host_org_id=self.other.id, reference_number="PR-2025-009")
        self.client.force_login(self.host_admin)
        self.assertEqual(self.client.get(f"/api/reviews/{review.id}").status_code, 404)
        self.assertEqual(self.client.get("/api/reviews/").json(), [])

    def test_schedule_and_transition_checks(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        self.client.force_login(self.coordinator)

        check = self.client.get(f"/api/reviews/{review.id}/transitions/SCHEDULED").json()
        self.assertFalse(check["allowed"])
        self.assertIn("Planned start date must be set", check["errors"])

        response = self.patch(f"/api/reviews/{review.id}/schedule", {
            "planned_start_date": "2025-09-01", "planned_end_date": "2025-09-05",
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["planned_start_date"], "2025-09-01")

        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER)
        self.add_member(review, self.peer)
        available = self.client.get(f"/api/reviews/{review.id}/transitions").json()
        scheduled = next(t for t in available if t["target_status"] == "SCHEDULED")
        self.assertTrue(scheduled["can_transition"])

        response = self.post(f"/api/reviews/{review.id}/transition", {"status": "SCHEDULED"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Recommended team size is 3+ reviewers", response.json()["warnings"])

    def test_status_flow(self):
        self.client.force_login(self.host_admin)
        flow = self.client.get("/api/reviews/status-flow?locale=fr").json()
        self.assertEqual(flow[1]["label"], "Approuvée")

    def test_checklist(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        review.actual_start_date = date(2025, 9, 1)
        review.save()
        self.add_member(review, self.peer)

        self.client.force_login(self.peer)
        checklist = self.client.get(f"/api/reviews/{review.id}/checklist").json()
        self.assertEqual(checklist["total"], 14)
        item_id = checklist["items"][0]["id"]

        response = self.patch(f"/api/reviews/{review.id}/checklist/{item_id}", {"is_completed": True})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_completed"])

        # The host can read but not tick
        self.client.force_login(self.host_admin)
        self.assertEqual(self.client.get(f"/api/reviews/{review.id}/checklist").status_code, 200)
        response = self.patch(f"/api/reviews/{review.id}/checklist/{item_id}", {"is_completed": False})
        self.assertEqual(response.status_code, 403)
