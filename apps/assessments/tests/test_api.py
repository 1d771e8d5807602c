"""
API tests for assessments: tenant scoping, role checks and the
create -> answer -> submit -> review flow over HTTP.
"""
import json
from django.test import TestCase, Client

from apps.assessments.models import Assessment, AssessmentStatus, ResponseValue
from apps.identity.models import User, UserRole
from apps.organizations.models import Organization, AfricanRegion
from apps.reviews.models import Review, ReviewTeamMember, TeamRole
from .test_services import make_ans_questionnaire


class AssessmentAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.org_a = Organization.objects.create(
            name_en="Org A", name_fr="Org A", organization_code="ORGA", country="Kenya", region=AfricanRegion.ESAF,
        )
        self.org_b = Organization.objects.create(
            name_en="Org B", name_fr="Org B", organization_code="ORGB", country="Ghana", region=AfricanRegion.WACAF,
        )
        self.admin_a = User.objects.create_user(username="admin_a", role=UserRole.ANSP_ADMIN, org_id=self.org_a.id)
        self.staff_a = User.objects.create_user(username="staff_a", role=UserRole.STAFF, org_id=self.org_a.id)
        self.admin_b = User.objects.create_user(username="admin_b", role=UserRole.ANSP_ADMIN, org_id=self.org_b.id)
        self.coordinator = User.objects.create_user(username="coord", role=UserRole.PROGRAMME_COORDINATOR)
        self.reviewer = User.objects.create_user(username="rev", role=UserRole.PEER_REVIEWER, org_id=self.org_b.id)
        self.questionnaire, self.questions = make_ans_questionnaire()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def put(self, url, data):
        return self.client.put(url, data=json.dumps(data), content_type="application/json")

    def create_as(self, user):
        self.client.force_login(user)
        return self.post("/api/assessments/", {
            "questionnaire_id": str(self.questionnaire.id),
            "title": "Annual self-assessment",
        })

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/assessments/").status_code, 401)

    def test_create_for_own_organization(self):
        response = self.create_as(self.admin_a)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["org_id"], str(self.org_a.id))
        self.assertEqual(response.json()["status"], AssessmentStatus.DRAFT)

    def test_staff_cannot_create(self):
        self.assertEqual(self.create_as(self.staff_a).status_code, 403)

    def test_duplicate_returns_400(self):
        self.create_as(self.admin_a)
        self.assertEqual(self.create_as(self.admin_a).status_code, 400)

    def test_tenant_isolation(self):
        assessment_id = self.create_as(self.admin_a).json()["id"]

        self.client.force_login(self.admin_b)
        self.assertEqual(self.client.get("/api/assessments/").json(), [])
        self.assertEqual(self.client.get(f"/api/assessments/{assessment_id}").status_code, 404)

        self.client.force_login(self.coordinator)
        self.assertEqual(len(self.client.get("/api/assessments/").json()), 1)

    def test_assigned_reviewer_sees_host_assessments(self):
        assessment_id = self.create_as(self.admin_a).json()["id"]
        review = Review.objects.create(host_org_id=self.org_a.id, reference_number="PR-2025-001")

        self.client.force_login(self.reviewer)
        self.assertEqual(self.client.get(f"/api/assessments/{assessment_id}").status_code, 404)

        ReviewTeamMember.objects.create(review=review, user=self.reviewer, role=TeamRole.REVIEWER)
        self.assertEqual(self.client.get(f"/api/assessments/{assessment_id}").status_code, 200)
        # Read-only access
        response = self.put(f"/api/assessments/{assessment_id}/responses", {
            "question_id": str(self.questions[0].id), "response_value": ResponseValue.SATISFACTORY,
        })
        self.assertEqual(response.status_code, 403)

    def test_full_flow(self):
        assessment_id = self.create_as(self.admin_a).json()["id"]

        # Staff of the organization answer the questions
        self.client.force_login(self.staff_a)
        for question in self.questions:
            response = self.put(f"/api/assessments/{assessment_id}/responses", {
                "question_id": str(question.id),
                "response_value": ResponseValue.SATISFACTORY,
                "evidence_urls": ["https://docs.example.org/manual.pdf"],
            })
            self.assertEqual(response.status_code, 200)

        progress = self.client.get(f"/api/assessments/{assessment_id}/progress").json()
        self.assertEqual(progress["percentage"], 100)
        self.assertTrue(self.client.get(f"/api/assessments/{assessment_id}/validation").json()["is_valid"])
        scores = self.client.get(f"/api/assessments/{assessment_id}/scores").json()
        self.assertEqual(scores["ei_score"], 100.0)
        self.assertEqual(scores["ei_category"], "EXCELLENT")

        # Only managers submit
        self.assertEqual(self.post(f"/api/assessments/{assessment_id}/submit", {}).status_code, 403)
        self.client.force_login(self.admin_a)
        response = self.post(f"/api/assessments/{assessment_id}/submit", {"submission_notes": "Done"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["assessment"]["status"], AssessmentStatus.SUBMITTED)

        # Review is reserved for programme staff
        response = self.post(f"/api/assessments/{assessment_id}/transition", {"status": "UNDER_REVIEW"})
        self.assertEqual(response.status_code, 403)
        self.client.force_login(self.coordinator)
        response = self.post(f"/api/assessments/{assessment_id}/transition", {"status": "UNDER_REVIEW"})
        self.assertEqual(response.status_code, 200)
        response = self.post(f"/api/assessments/{assessment_id}/transition", {"status": "ARCHIVED"})
        self.assertEqual(response.status_code, 400)

    def test_delete_draft(self):
        assessment_id = self.create_as(self.admin_a).json()["id"]
        response = self.client.delete(f"/api/assessments/{assessment_id}")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Assessment.objects.filter(id=assessment_id).exists())

    def test_statuses_in_french(self):
        self.client.force_login(self.staff_a)
        statuses = self.client.get("/api/assessments/statuses?locale=fr").json()
        self.assertEqual(statuses[0]["code"], "DRAFT")
        self.assertEqual(statuses[0]["label"], "Brouillon")

    def test_questionnaire_detail(self):
        self.client.force_login(self.staff_a)
        data = self.client.get(f"/api/assessments/questionnaires/{self.questionnaire.id}").json()
        self.assertEqual(len(data["questions"]), 3)
