"""
Report lifecycle: generation, PDF storage, editing, status workflow and
who may read a report.
"""
from unittest import mock

from apps.governance.audit_service import AuditAction
from apps.governance.models import AuditLog
from apps.findings.tests.test_services import FindingTestBase
from apps.notifications.models import Notification, NotificationType
from apps.reports import report_service
from apps.reports.models import ReviewReport, ReportStatus
from apps.reports.schemas import ReportSectionsIn
from apps.reviews.models import ReviewStatus


class ReportTestBase(FindingTestBase):
    def setUp(self):
        super().setUp()
        self.make_finding()
        self.review.status = ReviewStatus.REPORT_DRAFTING
        self.review.save()

        pdf_patcher = mock.patch.object(report_service, "generate_report_pdf", return_value=b"%PDF-1.7 test")
        storage_patcher = mock.patch.object(report_service, "default_storage")
        self.render_pdf = pdf_patcher.start()
        self.storage = storage_patcher.start()
        self.addCleanup(pdf_patcher.stop)
        self.addCleanup(storage_patcher.stop)
        self.storage.save.side_effect = lambda name, content: name
        self.storage.url.side_effect = lambda name: f"/media/{name}"

    def generate(self, user=None, locale=None):
        return report_service.request_report_generation(self.review, user or self.lead, locale=locale)


class GenerateReportTest(ReportTestBase):
    def test_generation_stores_pdf_and_notifies_team(self):
        report = self.generate()
        report.refresh_from_db()

        self.assertEqual(report.status, ReportStatus.DRAFT)
        self.assertEqual(report.version, 1)
        self.assertEqual(report.generated_by, self.lead)
        self.assertEqual(report.content['findings_summary']['total'], 1)
        expected = f"reports/{self.host.id}/AAPRP-RPT-PR-2025-001-v1-draft.pdf"
        self.assertEqual(report.file_name, expected)
        self.assertEqual(report.file_url, f"/media/{expected}")
        self.render_pdf.assert_called_once()

        self.assertTrue(AuditLog.objects.filter(action=AuditAction.GENERATE_REPORT, target_id=report.id).exists())
        for user in (self.lead, self.peer):
            self.assertTrue(Notification.objects.filter(user=user, type=NotificationType.REPORT_DRAFT_READY).exists())
        self.assertFalse(Notification.objects.filter(user=self.host_admin, type=NotificationType.REPORT_DRAFT_READY).exists())

    def test_regeneration_keeps_history(self):
        self.generate()
        report = self.generate(user=self.coordinator, locale="fr")

        self.assertEqual(ReviewReport.objects.count(), 1)
        self.assertEqual(report.version, 2)
        self.assertEqual(report.locale, "fr")
        self.assertEqual([v['version'] for v in report.version_history], [1, 2])
        self.assertEqual(len(report.version_history[1]['content_hash']), 64)

    def test_version_follows_the_stored_row(self):
        first = self.generate()
        ReviewReport.objects.filter(id=first.id).update(version=5)

        report = self.generate()
        self.assertEqual(report.version, 6)
        self.assertEqual(ReviewReport.objects.get(id=first.id).version, 6)

    def test_only_leads_and_admins_generate(self):
        for user in (self.peer, self.host_admin):
            with self.assertRaises(PermissionError):
                self.generate(user=user)

    def test_lead_of_another_review_cannot_generate(self):
        self.review.team_members.filter(user=self.lead).delete()
        with self.assertRaises(PermissionError):
            self.generate()

    def test_requires_report_phase(self):
        self.review.status = ReviewStatus.IN_PROGRESS
        self.review.save()
        with self.assertRaisesMessage(ValueError, "fieldwork is complete"):
            self.generate()

    def test_missing_report_is_skipped(self):
        report = self.generate()
        report_id = report.id
        report.delete()
        self.assertIsNone(report_service.store_report_pdf(report_id))


class ReportWorkflowTest(ReportTestBase):
    def test_full_workflow(self):
        report = self.generate()

        report_service.transition_report(report, ReportStatus.UNDER_REVIEW, self.lead)
        self.assertIsNotNone(report.submitted_at)
        self.assertTrue(Notification.objects.filter(
            user=self.coordinator, type=NotificationType.REPORT_SUBMITTED
        ).exists())

        report_service.finalize_report(report, self.lead)
        self.assertEqual(report.finalized_by, self.lead)
        # The final PDF is rendered again without the draft marker
        self.assertEqual(self.render_pdf.call_count, 2)
        report.refresh_from_db()
        self.assertTrue(report.file_name.endswith("-v1-final.pdf"))

        with self.assertRaises(PermissionError):
            report_service.publish_report(report, self.lead)

        report_service.publish_report(report, self.coordinator)
        self.assertEqual(report.status, ReportStatus.PUBLISHED)
        self.assertIsNotNone(report.published_at)
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.PUBLISH_REPORT, target_id=report.id).exists())
        for user in (self.host_admin, self.safety_manager, self.lead):
            self.assertTrue(Notification.objects.filter(user=user, type=NotificationType.REPORT_APPROVED).exists())
        self.assertFalse(Notification.objects.filter(user=self.host_staff).exists())

    def test_invalid_transitions(self):
        report = self.generate()
        with self.assertRaisesMessage(ValueError, "Invalid status transition from DRAFT to FINAL"):
            report_service.transition_report(report, ReportStatus.FINAL, self.coordinator)
        with self.assertRaisesMessage(ValueError, "Invalid report status"):
            report_service.transition_report(report, "ARCHIVED", self.coordinator)

    def test_report_must_be_generated_before_review(self):
        report = ReviewReport.objects.create(review=self.review)
        with self.assertRaisesMessage(ValueError, "Generate the report"):
            report_service.transition_report(report, ReportStatus.UNDER_REVIEW, self.coordinator)

    def test_back_to_draft(self):
        report = self.generate()
        report_service.transition_report(report, ReportStatus.UNDER_REVIEW, self.lead)
        report_service.transition_report(report, ReportStatus.DRAFT, self.coordinator)
        self.assertEqual(report.status, ReportStatus.DRAFT)
        self.assertEqual(
            report_service.get_allowed_report_statuses(self.lead, report), [ReportStatus.UNDER_REVIEW]
        )

    def test_final_report_is_frozen(self):
        report = self.generate()
        report.status = ReportStatus.FINAL
        report.save()

        with self.assertRaisesMessage(ValueError, "finalized"):
            report_service.update_report_sections(report, ReportSectionsIn(conclusion_en="Done"), self.lead)
        with self.assertRaisesMessage(ValueError, "finalized"):
            self.generate()

    def test_edit_sections(self):
        report = self.generate()
        report_service.update_report_sections(
            report, ReportSectionsIn(executive_summary_en="Good overall.", executive_summary_fr="Bien."), self.lead,
        )
        report.refresh_from_db()
        self.assertEqual(report.executive_summary_fr, "Bien.")
        self.assertEqual(report.conclusion_en, "")

        with self.assertRaises(PermissionError):
            report_service.update_report_sections(report, ReportSectionsIn(conclusion_en="x"), self.peer)


class ReportVisibilityTest(ReportTestBase):
    def test_visibility(self):
        report = self.generate()
        visible = lambda user: list(report_service.visible_reports(user))

        for user in (self.coordinator, self.lead, self.peer, self.host_admin, self.safety_manager):
            self.assertEqual(visible(user), [report])
        for user in (self.peer2, self.host_staff):
            self.assertEqual(visible(user), [])

    def test_statistics(self):
        self.generate()
        stats = report_service.get_report_statistics(self.coordinator)
        self.assertEqual(stats['total'], 1)
        self.assertEqual(stats['by_status'][ReportStatus.DRAFT], 1)
        self.assertEqual(stats['by_status'][ReportStatus.PUBLISHED], 0)
        self.assertEqual(report_service.get_report_statistics(self.peer2)['total'], 0)
