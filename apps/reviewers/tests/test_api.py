"""
API tests for reviewer profiles, conflicts of interest and matching.
"""
import json
from datetime import date

from django.test import Client

from apps.reviewers.models import ReviewerProfile, ReviewerCOI, COIOverride, COIType, ExpertiseArea
from apps.reviews.tests.test_services import ReviewTestBase


class ReviewerAPITest(ReviewTestBase):
    def setUp(self):
        super().setUp()
        self.client = Client()
        self.review = self.make_review()
        self.review.planned_start_date = date(2025, 6, 2)
        self.review.planned_end_date = date(2025, 6, 6)
        self.review.areas_in_scope = [ExpertiseArea.ATS]
        self.review.save()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def put(self, url, data):
        return self.client.put(url, data=json.dumps(data), content_type="application/json")

    def patch(self, url, data):
        return self.client.patch(url, data=json.dumps(data), content_type="application/json")

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/reviewers/").status_code, 401)

    def test_list_and_filters(self):
        self.client.force_login(self.peer)
        self.assertEqual(len(self.client.get("/api/reviewers/").json()), 3)
        self.assertEqual(len(self.client.get("/api/reviewers/?lead_qualified=true").json()), 1)

        response = self.client.get("/api/reviewers/me")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["profile"]["user"], str(self.peer.id))

        self.client.force_login(self.host_staff)
        self.assertEqual(self.client.get("/api/reviewers/").status_code, 403)

    def test_lead_edits_own_profile(self):
        profile = self.lead.reviewer_profile
        self.client.force_login(self.lead)
        response = self.patch(f"/api/reviewers/{profile.id}", {"current_position": "ATS Inspector"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["current_position"], "ATS Inspector")
        self.assertEqual(self.patch(f"/api/reviewers/{profile.id}", {"selection_status": "INACTIVE"}).status_code, 403)

        response = self.put(f"/api/reviewers/{profile.id}/expertise", [{"area": "ATS", "proficiency_level": "EXPERT"}])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]["area"], "ATS")
        self.assertEqual(self.put(f"/api/reviewers/{profile.id}/languages", [{"language": "XX"}]).status_code, 400)

        response = self.post(f"/api/reviewers/{profile.id}/availability", {
            "start_date": "2025-06-01", "end_date": "2025-06-10",
        })
        self.assertEqual(response.status_code, 201)
        slot_id = response.json()["id"]
        self.assertEqual(self.client.delete(f"/api/reviewers/{profile.id}/availability/{slot_id}").status_code, 204)

        # Peers have read access only
        self.client.force_login(self.peer)
        self.assertEqual(self.patch(f"/api/reviewers/{profile.id}", {"biography": "x"}).status_code, 403)

    def test_lead_qualification(self):
        profile = self.peer.reviewer_profile
        self.client.force_login(self.lead)
        self.assertEqual(self.post(f"/api/reviewers/{profile.id}/lead-qualification", {"qualified": True}).status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.post(f"/api/reviewers/{profile.id}/lead-qualification", {"qualified": True})
        self.assertEqual(response.status_code, 400)
        self.assertIn("completed reviews", response.json()["detail"])

        ReviewerProfile.objects.filter(id=profile.id).update(reviews_completed=4)
        response = self.post(f"/api/reviewers/{profile.id}/lead-qualification", {"qualified": True})
        self.assertTrue(response.json()["is_lead_qualified"])

    def test_conflicts_and_overrides(self):
        profile = self.lead.reviewer_profile
        self.client.force_login(self.lead)
        response = self.post(f"/api/reviewers/{profile.id}/conflicts", {
            "org_id": str(self.host.id), "coi_type": COIType.FORMER_EMPLOYEE,
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.post(f"/api/reviewers/{profile.id}/conflicts", {
            "org_id": str(self.host.id), "coi_type": COIType.HOME_ORGANIZATION,
        }).status_code, 400)

        check = self.client.get(f"/api/reviewers/{profile.id}/coi-check?org_id={self.host.id}").json()
        self.assertTrue(check["has_soft_warning"])
        self.assertFalse(check["can_assign"])

        override_url = f"/api/reviewers/{profile.id}/overrides"
        payload = {
            "org_id": str(self.host.id), "review_id": str(self.review.id),
            "justification": "Left the organization in 2015",
        }
        self.assertEqual(self.post(override_url, payload).status_code, 403)

        self.client.force_login(self.coordinator)
        self.assertEqual(self.post(override_url, dict(payload, org_id=str(self.other.id))).status_code, 400)
        response = self.post(override_url, payload)
        self.assertEqual(response.status_code, 201)
        override_id = response.json()["id"]

        check = self.client.get(
            f"/api/reviewers/{profile.id}/coi-check?org_id={self.host.id}&review_id={self.review.id}"
        ).json()
        self.assertTrue(check["has_override"])
        self.assertTrue(check["can_assign"])

        self.assertEqual(self.post(f"/api/reviewers/overrides/{override_id}/revoke", {}).status_code, 200)
        self.assertEqual(self.post(f"/api/reviewers/overrides/{override_id}/revoke", {}).status_code, 400)
        self.assertTrue(COIOverride.objects.get(id=override_id).is_revoked)

        self.client.force_login(self.lead)
        conflict = ReviewerCOI.objects.get(profile=profile)
        self.assertEqual(self.client.delete(f"/api/reviewers/{profile.id}/conflicts/{conflict.id}").status_code, 204)
        conflict.refresh_from_db()
        self.assertFalse(conflict.is_active)

    def test_matching_is_for_planners(self):
        url = f"/api/reviewers/reviews/{self.review.id}/matches"
        # Hosts can read the review but not plan its team
        self.client.force_login(self.host_admin)
        self.assertEqual(self.post(url, {}).status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.post(url, {"required_languages": []})
        self.assertEqual(response.status_code, 200)
        self.assertEqual({m["full_name"] for m in response.json()}, {"lead", "peer", "peer2"})
        self.assertEqual(self.post(url, {"team_size": 9}).status_code, 422)

        response = self.post(f"/api/reviewers/reviews/{self.review.id}/suggested-team", {"team_size": 2})
        self.assertEqual(response.status_code, 200)
        self.assertIn("coverage", response.json())

        self.review.planned_start_date = None
        self.review.save()
        self.assertEqual(self.post(url, {}).status_code, 400)

    def test_team_conflicts(self):
        self.add_member(self.review, self.lead)
        self.add_member(self.review, self.peer)
        ReviewerCOI.objects.create(
            profile=self.peer.reviewer_profile, org_id=self.host.id,
            coi_type=COIType.FAMILY_RELATIONSHIP, severity="HARD_BLOCK",
        )

        self.client.force_login(self.coordinator)
        response = self.client.get(f"/api/reviewers/reviews/{self.review.id}/team-coi")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["summary"]["blocked"], 1)
        self.assertEqual(data["summary"]["eligible"], 1)
        self.assertFalse(data["can_proceed"])
