"""
Report aggregation: every section is built from the review data and
localized in the requested language.
"""
from datetime import timedelta

from django.utils import timezone

from apps.assessments.models import Assessment, AssessmentResponse, AssessmentStatus, ResponseValue
from apps.assessments.tests.test_services import make_ans_questionnaire, make_sms_questionnaire
from apps.findings.models import CAPStatus, FindingType, FindingSeverity
from apps.findings.tests.test_services import FindingTestBase
from apps.reports.aggregate import aggregate_report_data
from apps.reviews.models import InvitationStatus


class AggregateReportTest(FindingTestBase):
    def test_metadata_and_cover_page(self):
        content = aggregate_report_data(self.review, "en", generated_by=self.coordinator)

        self.assertEqual(content['locale'], "en")
        self.assertEqual(content['metadata']['report_reference'], "AAPRP-RPT-PR-2025-001")
        self.assertEqual(content['metadata']['host_organization']['code'], "KCAA")
        self.assertEqual(content['metadata']['generated_by']['role'], "PROGRAMME_COORDINATOR")
        self.assertEqual(content['cover_page']['title'], "Peer Review Report")
        self.assertEqual(content['cover_page']['subtitle'], "KCAA ANSP")
        self.assertEqual(content['cover_page']['classification'], "CONFIDENTIAL")

    def test_french_report(self):
        self.make_finding()
        content = aggregate_report_data(self.review, "fr-FR")

        self.assertEqual(content['locale'], "fr")
        self.assertEqual(content['cover_page']['title'], "Rapport de revue par les pairs")
        self.assertEqual(content['cover_page']['subtitle'], "ANSP KCAA")
        self.assertEqual(content['labels']['findings_detail'], "Constatations")
        self.assertEqual(content['findings_detail'][0]['type_label'], "Non-conformité")
        # No French title recorded, so the English one is used
        self.assertEqual(content['findings_detail'][0]['title'], "SMS manual not approved")
        self.assertEqual(content['introduction']['scope'], ["Revue de portée complète"])

    def test_team_composition_lists_confirmed_members(self):
        self.add_member(self.review, self.peer2, status=InvitationStatus.DECLINED)
        team = aggregate_report_data(self.review)['team_composition']

        self.assertEqual(team['team_lead']['name'], "lead")
        self.assertEqual(team['team_lead']['organization'], "GCAA ANSP")
        self.assertEqual([m['name'] for m in team['members']], ["peer"])
        self.assertEqual(team['observers'], [])

    def test_findings_and_good_practices(self):
        self.make_cap()
        self.make_finding(
            finding_type=FindingType.GOOD_PRACTICE, severity=FindingSeverity.OBSERVATION,
            title_en="Safety bulletin", audit_area="ANS",
        )
        content = aggregate_report_data(self.review)

        summary = content['findings_summary']
        self.assertEqual(summary['total'], 2)
        self.assertEqual(summary['critical_and_major'], 1)
        self.assertEqual(summary['cap_required'], 1)
        self.assertEqual(
            [(row['code'], row['count']) for row in summary['by_type']],
            [(FindingType.NON_CONFORMITY, 1), (FindingType.GOOD_PRACTICE, 1)],
        )
        self.assertEqual(summary['by_area'], {"ANS": 1, "GENERAL": 1})

        practices = content['good_practices']
        self.assertEqual(len(practices), 1)
        self.assertEqual(practices[0]['title'], "Safety bulletin")
        self.assertEqual(practices[0]['area'], "Air Navigation Services")

        detail = content['findings_detail'][0]
        self.assertEqual(detail['severity_label'], "Major")
        self.assertEqual(detail['cap_status'], CAPStatus.DRAFT)

    def test_corrective_action_summary(self):
        late = self.make_cap()
        late.due_date = timezone.localdate() - timedelta(days=3)
        late.save()
        self.make_cap(status=CAPStatus.VERIFIED)

        actions = aggregate_report_data(self.review)['corrective_actions']
        self.assertEqual(actions['total'], 2)
        self.assertEqual(actions['overdue'], 1)
        self.assertEqual(actions['completion_rate'], 50)
        self.assertEqual(sum(1 for c in actions['caps'] if c['is_overdue']), 1)

    def test_without_assessments(self):
        content = aggregate_report_data(self.review)
        self.assertFalse(content['ans_assessment']['available'])
        self.assertFalse(content['sms_assessment']['available'])


class AssessmentSectionTest(FindingTestBase):
    def link_assessment(self, questionnaire, answers, **fields):
        assessment = Assessment.objects.create(
            org_id=self.host.id, questionnaire=questionnaire, title=questionnaire.code,
            status=AssessmentStatus.SUBMITTED, submitted_at=timezone.now(), **fields,
        )
        for question, answer in answers:
            AssessmentResponse.objects.create(assessment=assessment, question=question, **answer)
        self.review.assessments.add(assessment)
        return assessment

    def test_ans_section(self):
        questionnaire, questions = make_ans_questionnaire()
        Assessment.objects.create(
            org_id=self.host.id, questionnaire=questionnaire, title="2023 self-assessment",
            status=AssessmentStatus.COMPLETED, submitted_at=timezone.now() - timedelta(days=400), ei_score=50.0,
        )
        values = [ResponseValue.SATISFACTORY, ResponseValue.NOT_SATISFACTORY, ResponseValue.SATISFACTORY]
        self.link_assessment(questionnaire, [(q, {'response_value': v}) for q, v in zip(questions, values)])

        ans = aggregate_report_data(self.review)['ans_assessment']
        self.assertTrue(ans['available'])
        self.assertEqual(ans['overall_ei'], 66.67)
        self.assertEqual([(a['code'], a['ei_score']) for a in ans['by_area']], [("AGA", 100.0), ("ANS", 50.0)])
        self.assertEqual(ans['by_critical_element'][0]['code'], "CE-1")
        self.assertEqual(ans['previous_ei'], 50.0)
        self.assertEqual(ans['ei_delta'], 16.67)
        self.assertEqual(ans['trend'], "IMPROVING")
        self.assertIn("Strong performance was noted in Aerodromes and Ground Aids", ans['narrative'])
        self.assertIn("Air Navigation Services, which scored below the 60% threshold", ans['narrative'])

    def test_sms_section(self):
        questionnaire, questions = make_sms_questionnaire()
        self.link_assessment(questionnaire, [
            (questions[0], {'maturity_level': "D"}),
            (questions[1], {'maturity_level': "B"}),
        ])

        sms = aggregate_report_data(self.review, "fr")['sms_assessment']
        self.assertTrue(sms['available'])
        self.assertEqual(sms['overall_level'], "B")
        self.assertEqual(
            [(c['code'], c['maturity_level']) for c in sms['by_component']],
            [("SAFETY_POLICY_OBJECTIVES", "D"), ("SAFETY_RISK_MANAGEMENT", "B")],
        )
        self.assertEqual(sms['by_component'][0]['study_areas'][0]['code'], "SA.1.1")
        self.assertIn("Gestion des risques de sécurité", sms['narrative'])
        self.assertIsNone(sms['previous_level'])
