"""
API tests for review reports.
"""
import json

from django.test import Client

from apps.reports.models import ReportStatus, ReviewReport
from .test_report_service import ReportTestBase


class ReportAPITest(ReportTestBase):
    def setUp(self):
        super().setUp()
        self.client = Client()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def generate_via_api(self, user=None):
        self.client.force_login(user or self.lead)
        return self.post(f"/api/reports/reviews/{self.review.id}/generate", {"locale": "en"})

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/reports/").status_code, 401)

    def test_generate(self):
        response = self.generate_via_api()
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["version"], 1)
        self.assertEqual(response.json()["status"], ReportStatus.DRAFT)

        self.assertEqual(self.generate_via_api(self.host_admin).status_code, 403)
        self.assertEqual(self.generate_via_api(self.peer2).status_code, 404)

    def test_generate_outside_report_phase(self):
        self.review.status = "IN_PROGRESS"
        self.review.save()
        self.assertEqual(self.generate_via_api().status_code, 400)

    def test_detail_and_download(self):
        report_id = self.generate_via_api().json()["report_id"]

        detail = self.client.get(f"/api/reports/{report_id}").json()
        self.assertTrue(detail["can_edit"])
        self.assertEqual(detail["allowed_statuses"], [ReportStatus.UNDER_REVIEW])
        self.assertEqual(detail["content"]["metadata"]["report_reference"], "AAPRP-RPT-PR-2025-001")
        self.assertEqual(len(detail["version_history"]), 1)

        by_review = self.client.get(f"/api/reports/reviews/{self.review.id}").json()
        self.assertEqual(by_review["report"]["id"], report_id)

        download = self.client.get(f"/api/reports/{report_id}/download").json()
        self.assertTrue(download["file_url"].endswith("-v1-draft.pdf"))

        self.client.force_login(self.host_admin)
        detail = self.client.get(f"/api/reports/{report_id}").json()
        self.assertFalse(detail["can_edit"])
        self.assertEqual(detail["allowed_statuses"], [])

        self.client.force_login(self.peer2)
        self.assertEqual(self.client.get(f"/api/reports/{report_id}").status_code, 404)

    def test_download_before_pdf(self):
        report_id = self.generate_via_api().json()["report_id"]
        ReviewReport.objects.filter(id=report_id).update(file_url="", file_name="")

        response = self.client.get(f"/api/reports/{report_id}/download")
        self.assertEqual(response.status_code, 404)

    def test_edit_sections(self):
        report_id = self.generate_via_api().json()["report_id"]
        response = self.client.patch(
            f"/api/reports/{report_id}",
            data=json.dumps({"conclusion_en": "The ANSP is well organised."}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["report"]["conclusion_en"], "The ANSP is well organised.")

        self.client.force_login(self.peer)
        response = self.client.patch(
            f"/api/reports/{report_id}", data=json.dumps({"conclusion_en": "x"}), content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_status_changes(self):
        report_id = self.generate_via_api().json()["report_id"]

        self.assertEqual(self.post(f"/api/reports/{report_id}/status", {"status": "FINAL"}).status_code, 400)
        response = self.post(f"/api/reports/{report_id}/status", {"status": "UNDER_REVIEW"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["report"]["status"], ReportStatus.UNDER_REVIEW)

        self.assertEqual(self.post(f"/api/reports/{report_id}/status", {"status": "FINAL"}).status_code, 200)
        self.assertEqual(self.post(f"/api/reports/{report_id}/status", {"status": "PUBLISHED"}).status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.post(f"/api/reports/{report_id}/status", {"status": "PUBLISHED"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["allowed_statuses"], [])

    def test_list_and_statistics(self):
        self.generate_via_api()
        self.client.force_login(self.coordinator)
        self.assertEqual(len(self.client.get("/api/reports/").json()), 1)
        self.assertEqual(len(self.client.get("/api/reports/?status=PUBLISHED").json()), 0)

        stats = self.client.get("/api/reports/statistics").json()
        self.assertEqual(stats["total"], 1)
        self.assertEqual(stats["by_status"]["DRAFT"], 1)
